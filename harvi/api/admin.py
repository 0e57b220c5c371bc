from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, StrictInt
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import require_admin
from ..core.exceptions import HarviError
from ..utils.hierarchy import serialize_entity
from ..utils.tree import serialize_lecture
from ..utils import entities
import logging

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


# Request/Response Models
# Required fields are checked by the validation layer so that a blank or
# missing field is reported as MissingField with the offending field name.
class YearIn(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    icon: Optional[str] = None


class ModuleIn(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    yearId: Optional[str] = None


class SubjectIn(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    moduleId: Optional[str] = None


class QuestionIn(BaseModel):
    id: Optional[str] = None
    text: Optional[str] = None
    options: Optional[List[str]] = None
    correctAnswer: Optional[StrictInt] = None


class LectureIn(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    subjectId: Optional[str] = None
    questions: Optional[List[QuestionIn]] = None


class YearResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime


class ModuleResponse(BaseModel):
    id: str
    yearId: str
    name: str
    createdAt: datetime
    updatedAt: datetime


class SubjectResponse(BaseModel):
    id: str
    moduleId: str
    name: str
    createdAt: datetime
    updatedAt: datetime


class QuestionAdmin(BaseModel):
    id: str
    text: str
    options: List[str]
    correctAnswer: int


class LectureResponse(BaseModel):
    id: str
    title: str
    subjectId: Optional[str] = None
    questions: List[QuestionAdmin]
    createdAt: datetime
    updatedAt: datetime


class DeleteResponse(BaseModel):
    message: str
    deleted: dict


def _payload(body: BaseModel) -> dict:
    return body.model_dump(exclude_unset=True)


def _lecture_payload(body: LectureIn) -> dict:
    data = body.model_dump(exclude_unset=True)
    if body.questions is not None:
        data["questions"] = [q.model_dump() for q in body.questions]
    return data


async def _fail(db: AsyncSession, action: str, e: Exception):
    logger.error(f"Error {action}: {e}", exc_info=True)
    await db.rollback()
    raise HTTPException(status_code=500, detail=f"Error {action}")


# Years
@router.get("/years", response_model=List[YearResponse])
async def get_years(db: AsyncSession = Depends(get_db)):
    years = await entities.list_entities(db, "year")
    return [serialize_entity("year", year) for year in years]


@router.get("/years/{year_id}", response_model=YearResponse)
async def get_year(year_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_entity("year", await entities.get_entity(db, "year", year_id))


@router.post("/years", response_model=YearResponse, status_code=status.HTTP_201_CREATED)
async def create_year(year: YearIn, db: AsyncSession = Depends(get_db)):
    try:
        db_year = await entities.create_entity(db, "year", _payload(year))
        return serialize_entity("year", db_year)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "creating year", e)


@router.put("/years/{year_id}", response_model=YearResponse)
async def update_year(year_id: str, year: YearIn, db: AsyncSession = Depends(get_db)):
    try:
        db_year = await entities.update_entity(db, "year", year_id, _payload(year))
        return serialize_entity("year", db_year)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "updating year", e)


@router.delete("/years/{year_id}", response_model=DeleteResponse)
async def delete_year(year_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await entities.delete_entity(db, "year", year_id)
    return {"message": "Year deleted", "deleted": deleted}


# Modules
@router.get("/modules", response_model=List[ModuleResponse])
async def get_modules(yearId: Optional[str] = Query(None), db: AsyncSession = Depends(get_db)):
    modules = await entities.list_entities(db, "module", parent_id=yearId)
    return [serialize_entity("module", module) for module in modules]


@router.get("/modules/{module_id}", response_model=ModuleResponse)
async def get_module(module_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_entity("module", await entities.get_entity(db, "module", module_id))


@router.post("/modules", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
async def create_module(module: ModuleIn, db: AsyncSession = Depends(get_db)):
    try:
        db_module = await entities.create_entity(db, "module", _payload(module))
        return serialize_entity("module", db_module)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "creating module", e)


@router.put("/modules/{module_id}", response_model=ModuleResponse)
async def update_module(module_id: str, module: ModuleIn, db: AsyncSession = Depends(get_db)):
    try:
        db_module = await entities.update_entity(db, "module", module_id, _payload(module))
        return serialize_entity("module", db_module)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "updating module", e)


@router.delete("/modules/{module_id}", response_model=DeleteResponse)
async def delete_module(module_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await entities.delete_entity(db, "module", module_id)
    return {"message": "Module deleted", "deleted": deleted}


# Subjects
@router.get("/subjects", response_model=List[SubjectResponse])
async def get_subjects(moduleId: Optional[str] = Query(None), db: AsyncSession = Depends(get_db)):
    subjects = await entities.list_entities(db, "subject", parent_id=moduleId)
    return [serialize_entity("subject", subject) for subject in subjects]


@router.get("/subjects/{subject_id}", response_model=SubjectResponse)
async def get_subject(subject_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_entity("subject", await entities.get_entity(db, "subject", subject_id))


@router.post("/subjects", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(subject: SubjectIn, db: AsyncSession = Depends(get_db)):
    try:
        db_subject = await entities.create_entity(db, "subject", _payload(subject))
        return serialize_entity("subject", db_subject)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "creating subject", e)


@router.put("/subjects/{subject_id}", response_model=SubjectResponse)
async def update_subject(subject_id: str, subject: SubjectIn, db: AsyncSession = Depends(get_db)):
    try:
        db_subject = await entities.update_entity(db, "subject", subject_id, _payload(subject))
        return serialize_entity("subject", db_subject)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "updating subject", e)


@router.delete("/subjects/{subject_id}", response_model=DeleteResponse)
async def delete_subject(subject_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await entities.delete_entity(db, "subject", subject_id)
    return {"message": "Subject deleted", "deleted": deleted}


# Lectures (admin reads include correctAnswer)
@router.get("/lectures", response_model=List[LectureResponse])
async def get_lectures(subjectId: Optional[str] = Query(None), db: AsyncSession = Depends(get_db)):
    lectures = await entities.list_entities(db, "lecture", parent_id=subjectId)
    return [serialize_lecture(lecture, include_answers=True) for lecture in lectures]


@router.get("/lectures/{lecture_id}", response_model=LectureResponse)
async def get_lecture(lecture_id: str, db: AsyncSession = Depends(get_db)):
    lecture = await entities.get_entity(db, "lecture", lecture_id)
    return serialize_lecture(lecture, include_answers=True)


@router.post("/lectures", response_model=LectureResponse, status_code=status.HTTP_201_CREATED)
async def create_lecture(lecture: LectureIn, db: AsyncSession = Depends(get_db)):
    try:
        db_lecture = await entities.create_entity(db, "lecture", _lecture_payload(lecture))
        return serialize_lecture(db_lecture, include_answers=True)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "creating lecture", e)


@router.put("/lectures/{lecture_id}", response_model=LectureResponse)
async def update_lecture(lecture_id: str, lecture: LectureIn, db: AsyncSession = Depends(get_db)):
    try:
        db_lecture = await entities.update_entity(db, "lecture", lecture_id, _lecture_payload(lecture))
        return serialize_lecture(db_lecture, include_answers=True)
    except HarviError:
        raise
    except Exception as e:
        await _fail(db, "updating lecture", e)


@router.delete("/lectures/{lecture_id}", response_model=DeleteResponse)
async def delete_lecture(lecture_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await entities.delete_entity(db, "lecture", lecture_id)
    return {"message": "Lecture deleted", "deleted": deleted}


@router.post("/lectures/{lecture_id}/questions", response_model=LectureResponse,
             status_code=status.HTTP_201_CREATED)
async def add_question(lecture_id: str, question: QuestionIn, db: AsyncSession = Depends(get_db)):
    db_lecture = await entities.add_question(db, lecture_id, question.model_dump())
    return serialize_lecture(db_lecture, include_answers=True)


@router.put("/lectures/{lecture_id}/questions/{question_id}", response_model=LectureResponse)
async def update_question(lecture_id: str, question_id: str, question: QuestionIn,
                          db: AsyncSession = Depends(get_db)):
    db_lecture = await entities.update_question(db, lecture_id, question_id, _payload(question))
    return serialize_lecture(db_lecture, include_answers=True)


@router.delete("/lectures/{lecture_id}/questions/{question_id}", response_model=LectureResponse)
async def delete_question(lecture_id: str, question_id: str, db: AsyncSession = Depends(get_db)):
    db_lecture = await entities.delete_question(db, lecture_id, question_id)
    return serialize_lecture(db_lecture, include_answers=True)
