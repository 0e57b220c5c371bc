from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.exceptions import ConflictError, EntityValidationError, NotFoundError
from .hierarchy import get_config, model_for, display_name, to_columns
from .validation import (
    validate_required_fields,
    validate_questions,
    validate_question,
    validate_unique,
    validate_reference,
    normalize_question,
)
from .cascade import cascade_delete, lock_entity, run_atomically, stage_rename
import logging

logger = logging.getLogger(__name__)


async def get_entity(db: AsyncSession, kind: str, entity_id: str):
    model = model_for(kind)
    result = await db.execute(select(model).filter(model.id == entity_id))
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundError(f"{display_name(kind)} with ID {entity_id} not found", field="id", id=entity_id)
    return entity


async def list_entities(db: AsyncSession, kind: str, parent_id: Optional[str] = None) -> List:
    """All entities of one kind in insertion order, optionally filtered by parent."""
    model = model_for(kind)
    query = select(model)
    parent = get_config(kind)["parent"]
    if parent is not None and parent_id is not None:
        query = query.filter(getattr(model, parent[1]) == parent_id)
    result = await db.execute(query.order_by(model.created_at, model.id))
    return list(result.scalars().all())


async def create_entity(db: AsyncSession, kind: str, data: dict):
    """
    createWithValidation: every check runs before the row is staged,
    so a rejected create leaves the store untouched.
    """
    config = get_config(kind)
    validate_required_fields(data, kind)

    if kind == "lecture":
        data = dict(data)
        data["questions"] = [normalize_question(q) for q in _checked_questions(data.get("questions"))]

    await validate_unique(db, kind, data["id"])

    parent = config["parent"]
    if parent is not None:
        wire_field = parent[2]
        await validate_reference(db, kind, wire_field, data.get(wire_field))

    entity = config["model"](**to_columns(kind, data))
    db.add(entity)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against a concurrent create of the same id
        await db.rollback()
        raise ConflictError(f"{display_name(kind)} with ID {data['id']} already exists", field="id", id=data["id"])

    await db.refresh(entity)
    logger.info(f"Created {kind} {entity.id}")
    return entity


def _checked_questions(questions) -> list:
    if questions is None:
        return []
    validate_questions(questions)
    return questions


async def update_entity(db: AsyncSession, kind: str, entity_id: str, changes: dict,
                        timeout: Optional[float] = None):
    """
    Partial update. Changing `id` goes through the rename cascade, changing
    the parent reference re-validates it; both happen in one transaction
    with the remaining field changes.
    """
    config = get_config(kind)
    required_present = tuple(name for name in config["required_fields"] if name in changes)
    validate_required_fields(changes, kind, fields=required_present)

    if kind == "lecture" and "questions" in changes:
        if changes["questions"] is None:
            # Clearing takes an explicit []
            raise EntityValidationError(
                "questions must be a list; send [] to remove every question",
                field="questions",
                id=entity_id,
                code="InvalidQuestion",
            )
        changes = dict(changes)
        changes["questions"] = [normalize_question(q) for q in _checked_questions(changes["questions"])]

    parent = config["parent"]

    async def work():
        entity = await lock_entity(db, kind, entity_id)
        new_id = changes.get("id", entity_id)

        if new_id != entity_id:
            await validate_unique(db, kind, new_id)

        if parent is not None:
            _parent_kind, column, wire_field, _optional = parent
            if wire_field in changes and changes[wire_field] != getattr(entity, column):
                await validate_reference(db, kind, wire_field, changes[wire_field])

        if new_id != entity_id:
            await stage_rename(db, kind, entity, new_id)

        for column, value in to_columns(kind, changes).items():
            if column == "id":
                continue
            setattr(entity, column, value)
        entity.touch()
        await db.flush()
        return entity

    entity = await run_atomically(db, work, f"update {kind} '{entity_id}'", timeout)
    logger.info(f"Updated {kind} {entity_id}" + (f" (now {entity.id})" if entity.id != entity_id else ""))
    return entity


async def delete_entity(db: AsyncSession, kind: str, entity_id: str, timeout: Optional[float] = None) -> dict:
    return await cascade_delete(db, kind, entity_id, timeout=timeout)


async def add_question(db: AsyncSession, lecture_id: str, question: dict):
    """Append one validated question, rejecting a duplicate id within the lecture."""
    validate_question(question)
    stored = normalize_question(question)

    async def work():
        lecture = await lock_entity(db, "lecture", lecture_id)
        if lecture.find_question(stored["id"]) is not None:
            raise ConflictError(
                f"Question with ID {stored['id']} already exists in this lecture",
                field="questions.id",
                id=stored["id"],
            )
        lecture.questions = list(lecture.questions or []) + [stored]
        lecture.touch()
        await db.flush()
        return lecture

    lecture = await run_atomically(db, work, f"add question to lecture '{lecture_id}'")
    logger.info(f"Added question {stored['id']} to lecture {lecture_id}")
    return lecture


def _question_index(lecture, question_id: str) -> int:
    for index, question in enumerate(lecture.questions or []):
        if question.get("id") == question_id:
            return index
    raise NotFoundError(
        f"Question {question_id} not found in lecture {lecture.id}",
        field="questions.id",
        id=question_id,
    )


async def update_question(db: AsyncSession, lecture_id: str, question_id: str, changes: dict):
    """
    Edit one question in place; its position in the lecture is kept.

    `changes` may rename the question, but not onto the id of a sibling.
    """

    async def work():
        lecture = await lock_entity(db, "lecture", lecture_id)
        questions = list(lecture.questions or [])
        index = _question_index(lecture, question_id)

        merged = dict(questions[index])
        merged.update({key: value for key, value in changes.items() if value is not None})
        validate_question(merged)
        if merged["id"] != question_id and lecture.find_question(merged["id"]) is not None:
            raise ConflictError(
                f"Question with ID {merged['id']} already exists in this lecture",
                field="questions.id",
                id=merged["id"],
            )

        questions[index] = normalize_question(merged)
        lecture.questions = questions
        lecture.touch()
        await db.flush()
        return lecture

    lecture = await run_atomically(db, work, f"update question '{question_id}' of lecture '{lecture_id}'")
    logger.info(f"Updated question {question_id} of lecture {lecture_id}")
    return lecture


async def delete_question(db: AsyncSession, lecture_id: str, question_id: str):
    async def work():
        lecture = await lock_entity(db, "lecture", lecture_id)
        index = _question_index(lecture, question_id)
        questions = list(lecture.questions or [])
        del questions[index]
        lecture.questions = questions
        lecture.touch()
        await db.flush()
        return lecture

    lecture = await run_atomically(db, work, f"delete question '{question_id}' of lecture '{lecture_id}'")
    logger.info(f"Deleted question {question_id} from lecture {lecture_id}")
    return lecture
