from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.exceptions import (
    EntityValidationError,
    ReferenceIntegrityError,
    ConflictError,
)
from .hierarchy import get_config, model_for, display_name
import logging

logger = logging.getLogger(__name__)


def _is_blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_required_fields(entity: dict, kind: str, fields: Optional[tuple] = None) -> None:
    """
    Reject an entity whose required string fields are missing or blank.

    `fields` narrows the check for partial updates: only the fields actually
    being written need to be non-empty.
    """
    required = fields if fields is not None else get_config(kind)["required_fields"]
    missing = [name for name in required if _is_blank(entity.get(name))]
    if missing:
        logger.warning(f"{display_name(kind)} {entity.get('id')!r} rejected, missing: {missing}")
        raise EntityValidationError(
            f"{display_name(kind)} is missing required field(s): {', '.join(missing)}",
            field=missing[0],
            id=entity.get("id") if isinstance(entity.get("id"), str) else None,
            code="MissingField",
            fields=missing,
        )


def validate_question(question: dict, index: Optional[int] = None) -> None:
    """
    Check one embedded question: non-empty id and text, at least two
    distinct options, and a correctAnswer that indexes into the options.
    """
    prefix = f"questions[{index}]." if index is not None else ""
    question_id = question.get("id")

    def invalid(message: str, field: str):
        raise EntityValidationError(
            message,
            field=prefix + field,
            id=question_id if isinstance(question_id, str) else None,
            code="InvalidQuestion",
        )

    if _is_blank(question_id):
        invalid("Question id is required", "id")
    if _is_blank(question.get("text")):
        invalid(f"Question {question_id} has empty text", "text")

    options = question.get("options")
    if not isinstance(options, list) or not all(isinstance(option, str) for option in options):
        invalid(f"Question {question_id} options must be a list of strings", "options")
    if len(options) < 2:
        invalid(f"Question {question_id} must have at least 2 options", "options")
    if len(set(options)) != len(options):
        invalid(f"Question {question_id} options must be unique", "options")

    answer = question.get("correctAnswer")
    # bool is an int subclass; True is not a valid index
    if not isinstance(answer, int) or isinstance(answer, bool):
        invalid(f"Question {question_id} correctAnswer must be an integer", "correctAnswer")
    if not 0 <= answer < len(options):
        invalid(
            f"Invalid correct answer index {answer} for question {question_id} "
            f"(expected 0..{len(options) - 1})",
            "correctAnswer",
        )


def validate_questions(questions) -> None:
    """Validate every question of a lecture and reject duplicate question ids."""
    if not isinstance(questions, list):
        raise EntityValidationError("questions must be a list", field="questions", code="InvalidQuestion")

    seen = set()
    for index, question in enumerate(questions):
        if not isinstance(question, dict):
            raise EntityValidationError(
                "Each question must be an object", field=f"questions[{index}]", code="InvalidQuestion"
            )
        validate_question(question, index)
        if question["id"] in seen:
            raise EntityValidationError(
                f"Question IDs must be unique within a lecture: {question['id']}",
                field=f"questions[{index}].id",
                id=question["id"],
                code="InvalidQuestion",
            )
        seen.add(question["id"])


def normalize_question(question: dict) -> dict:
    """Keep only the stored question fields, in a stable order."""
    return {
        "id": question["id"],
        "text": question["text"],
        "options": list(question["options"]),
        "correctAnswer": question["correctAnswer"],
    }


async def validate_unique(db: AsyncSession, kind: str, entity_id: str) -> None:
    model = model_for(kind)
    result = await db.execute(select(model.id).filter(model.id == entity_id))
    if result.scalar_one_or_none() is not None:
        logger.warning(f"Duplicate {kind} id rejected: {entity_id}")
        raise ConflictError(
            f"{display_name(kind)} with ID {entity_id} already exists",
            field="id",
            id=entity_id,
        )


async def validate_reference(db: AsyncSession, child_kind: str, parent_id_field: str,
                             parent_id: Optional[str]) -> None:
    """
    Ensure the parent named by `parent_id_field` exists.

    The parent row is read with a shared lock so a concurrent cascade delete
    of the same parent waits for this transaction (or vice versa).
    """
    parent = get_config(child_kind)["parent"]
    if parent is None:
        return
    parent_kind, _column, _wire_field, optional = parent

    if parent_id is None and optional:
        return
    if _is_blank(parent_id):
        raise EntityValidationError(
            f"{display_name(child_kind)} is missing required field(s): {parent_id_field}",
            field=parent_id_field,
            code="MissingField",
        )

    parent_model = model_for(parent_kind)
    result = await db.execute(
        select(parent_model.id)
        .filter(parent_model.id == parent_id)
        .with_for_update(read=True)
    )
    if result.scalar_one_or_none() is None:
        logger.warning(f"{display_name(child_kind)} references missing {parent_kind} {parent_id}")
        raise ReferenceIntegrityError(
            f"Referenced {display_name(parent_kind)} {parent_id} does not exist",
            field=parent_id_field,
            id=parent_id,
            parent_kind=parent_kind,
        )
