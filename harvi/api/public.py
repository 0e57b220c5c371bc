from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field, StrictInt
from typing import List, Optional
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import optional_token, verify_token
from ..core.exceptions import EntityValidationError, HarviError
from ..utils.tree import get_hierarchy, get_lecture, get_lectures
from ..utils.grading import submit_quiz_result, check_answer, get_performance
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class SubjectNode(BaseModel):
    id: str
    moduleId: str
    name: str
    lectureCount: int


class ModuleNode(BaseModel):
    id: str
    yearId: str
    name: str
    subjects: List[SubjectNode]


class YearNode(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    modules: List[ModuleNode]


class QuestionPublic(BaseModel):
    """Quiz-taking view of a question. Never carries the correct answer."""
    id: str
    text: str
    options: List[str]


class LecturePublic(BaseModel):
    id: str
    title: str
    subjectId: Optional[str] = None
    questions: List[QuestionPublic]


class LectureBatchRequest(BaseModel):
    lectureIds: List[str]


class AnswerIn(BaseModel):
    questionId: str
    selectedAnswerIndex: StrictInt


class QuizResultIn(BaseModel):
    id: str = Field(..., min_length=1, description="Client-generated id; resubmitting it is a no-op")
    lectureId: str
    answers: List[AnswerIn]
    timeSpent: Optional[int] = None


class GradedAnswer(BaseModel):
    questionId: str
    selectedAnswerIndex: int
    isCorrect: bool


class QuizResultResponse(BaseModel):
    id: str
    lectureId: str
    score: int
    total: int
    percentage: int
    timeSpent: Optional[int] = None
    gradedDetails: List[GradedAnswer]


class CheckAnswerIn(BaseModel):
    lectureId: str
    questionId: str
    selectedAnswerIndex: StrictInt


class CheckAnswerResponse(BaseModel):
    questionId: str
    isCorrect: bool
    correctAnswer: int


class LecturePerformance(BaseModel):
    lectureId: str
    title: Optional[str] = None
    total: int
    correct: int
    accuracy: int


class PerformanceResponse(BaseModel):
    totalQuestionsAnswered: int
    correctAnswers: int
    overallAccuracy: int
    byLecture: List[LecturePerformance]


def _check_batch(lecture_ids: List[str]) -> List[str]:
    lecture_ids = [lecture_id.strip() for lecture_id in lecture_ids if lecture_id.strip()]
    if not lecture_ids:
        raise EntityValidationError("lectureIds must be a non-empty list", field="lectureIds",
                                    code="InvalidRequest")
    if len(lecture_ids) > settings.lecture_batch_limit:
        raise EntityValidationError(f"Maximum batch size is {settings.lecture_batch_limit}",
                                    field="lectureIds", code="InvalidRequest")
    return lecture_ids


@router.get("/years", response_model=List[YearNode])
async def get_years(db: AsyncSession = Depends(get_db)):
    """Full browsing tree: years -> modules -> subjects with lecture counts"""
    try:
        return await get_hierarchy(db)
    except Exception as e:
        logger.error(f"Error fetching years: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch structure")


@router.get("/lectures/batch", response_model=List[LecturePublic])
async def get_lectures_batch(ids: str = Query(..., description="Comma separated lecture ids"),
                             db: AsyncSession = Depends(get_db)):
    return await get_lectures(db, _check_batch(ids.split(",")))


@router.post("/lectures/batch", response_model=List[LecturePublic])
async def post_lectures_batch(request: LectureBatchRequest, db: AsyncSession = Depends(get_db)):
    return await get_lectures(db, _check_batch(request.lectureIds))


@router.get("/lectures/{lecture_id}", response_model=LecturePublic)
async def get_lecture_for_quiz(lecture_id: str, db: AsyncSession = Depends(get_db)):
    """Lecture with questions; correct answers are never included on this path"""
    try:
        lecture = await get_lecture(db, lecture_id, include_answers=False)
        logger.info(f"Loaded lecture: {lecture_id} with {len(lecture['questions'])} questions")
        return lecture
    except HarviError:
        raise
    except Exception as e:
        logger.error(f"Error fetching lecture {lecture_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch lecture")


@router.post("/quiz-results", response_model=QuizResultResponse, status_code=status.HTTP_201_CREATED)
async def post_quiz_result(result: QuizResultIn, response: Response, db: AsyncSession = Depends(get_db),
                           token_data: Optional[dict] = Depends(optional_token)):
    """Grade a finished quiz on the server; idempotent by result id"""
    who = f"user {token_data['user_id']}" if token_data else "anonymous guest"
    logger.info(f"Processing quiz submission {result.id} from {who}")

    stored, created = await submit_quiz_result(
        db,
        result_id=result.id,
        lecture_id=result.lectureId,
        answers=[answer.model_dump() for answer in result.answers],
        time_spent=result.timeSpent,
        user_id=token_data["user_id"] if token_data else None,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return stored


@router.post("/practice/check-answer", response_model=CheckAnswerResponse)
async def post_check_answer(body: CheckAnswerIn, db: AsyncSession = Depends(get_db)):
    """Practice mode: immediate feedback for one answered question"""
    return await check_answer(db, body.lectureId, body.questionId, body.selectedAnswerIndex)


@router.get("/student/performance", response_model=PerformanceResponse)
async def get_student_performance(token_data: dict = Depends(verify_token), db: AsyncSession = Depends(get_db)):
    """Accuracy of the signed-in user, overall and per lecture"""
    return await get_performance(db, token_data["user_id"])
