from typing import Iterable, List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.exceptions import NotFoundError
from ..models.year import Year
from ..models.module import Module
from ..models.subject import Subject
from ..models.lecture import Lecture
import logging

logger = logging.getLogger(__name__)


def assemble_hierarchy(rows: Iterable) -> List[dict]:
    """
    Fold flat (year, module, subject, lecture_count) rows into the browsing tree.

    Rows must already be ordered; module and subject may be None for
    childless parents (outer join).
    """
    years = []
    year_nodes = {}
    module_nodes = {}

    for year, module, subject, lecture_count in rows:
        year_node = year_nodes.get(year.id)
        if year_node is None:
            year_node = {"id": year.id, "name": year.name, "icon": year.icon, "modules": []}
            year_nodes[year.id] = year_node
            years.append(year_node)

        if module is None:
            continue
        module_node = module_nodes.get(module.id)
        if module_node is None:
            module_node = {"id": module.id, "yearId": module.year_id, "name": module.name, "subjects": []}
            module_nodes[module.id] = module_node
            year_node["modules"].append(module_node)

        if subject is None:
            continue
        module_node["subjects"].append({
            "id": subject.id,
            "moduleId": subject.module_id,
            "name": subject.name,
            "lectureCount": lecture_count or 0,
        })

    return years


async def get_hierarchy(db: AsyncSession) -> List[dict]:
    """
    Year -> Module -> Subject tree with lecture counts, no lecture bodies.

    Built from a single statement so the tree is one consistent snapshot
    even while a cascade is running elsewhere.
    """
    lecture_counts = (
        select(Lecture.subject_id.label("subject_id"), func.count(Lecture.id).label("lecture_count"))
        .filter(Lecture.subject_id.is_not(None))
        .group_by(Lecture.subject_id)
        .subquery()
    )
    query = (
        select(Year, Module, Subject, lecture_counts.c.lecture_count)
        .select_from(Year)
        .outerjoin(Module, Module.year_id == Year.id)
        .outerjoin(Subject, Subject.module_id == Module.id)
        .outerjoin(lecture_counts, lecture_counts.c.subject_id == Subject.id)
        .order_by(
            Year.created_at, Year.id,
            Module.created_at, Module.id,
            Subject.created_at, Subject.id,
        )
    )
    result = await db.execute(query)
    years = assemble_hierarchy(result.all())
    logger.info(f"Loaded hierarchy: {len(years)} years")
    return years


def serialize_question(question: dict, include_answers: bool = False) -> dict:
    # Whitelist: nothing but these keys ever leaves the server
    item = {
        "id": question["id"],
        "text": question["text"],
        "options": list(question["options"]),
    }
    if include_answers:
        item["correctAnswer"] = question["correctAnswer"]
    return item


def serialize_lecture(lecture, include_answers: bool = False) -> dict:
    """
    Lecture payload with its ordered questions.

    correctAnswer is stripped unless the caller is on the admin path.
    """
    return {
        "id": lecture.id,
        "title": lecture.title,
        "subjectId": lecture.subject_id,
        "questions": [serialize_question(q, include_answers) for q in lecture.questions or []],
        "createdAt": lecture.created_at,
        "updatedAt": lecture.updated_at,
    }


async def get_lecture(db: AsyncSession, lecture_id: str, include_answers: bool = False) -> dict:
    result = await db.execute(select(Lecture).filter(Lecture.id == lecture_id))
    lecture = result.scalar_one_or_none()
    if lecture is None:
        raise NotFoundError(f"Lecture with ID {lecture_id} not found", field="id", id=lecture_id)
    return serialize_lecture(lecture, include_answers=include_answers)


async def get_lectures(db: AsyncSession, lecture_ids: List[str]) -> List[dict]:
    """Quiz payloads for several lectures; unknown ids are skipped, request order kept."""
    if not lecture_ids:
        return []
    result = await db.execute(select(Lecture).filter(Lecture.id.in_(lecture_ids)))
    by_id = {lecture.id: lecture for lecture in result.scalars().all()}
    lectures = []
    for lecture_id in dict.fromkeys(lecture_ids):
        lecture = by_id.get(lecture_id)
        if lecture is not None:
            lectures.append(serialize_lecture(lecture))
    logger.info(f"Loaded {len(lectures)} of {len(lecture_ids)} requested lectures")
    return lectures
