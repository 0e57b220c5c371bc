from typing import List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.exceptions import ConflictError, EntityValidationError, NotFoundError
from ..models.lecture import Lecture
from ..models.quiz_result import QuizResult
import logging

logger = logging.getLogger(__name__)


def grade_answers(questions: List[dict], answers: List[dict]) -> List[dict]:
    """
    Grade submitted answers against the stored questions.

    Answers for unknown question ids are skipped; a question answered twice
    keeps its last answer.
    """
    correct_by_id = {q["id"]: q["correctAnswer"] for q in questions}
    graded = {}
    for answer in answers:
        question_id = answer.get("questionId")
        if question_id not in correct_by_id:
            logger.warning(f"Question {question_id} not found, skipping")
            continue
        selected = answer.get("selectedAnswerIndex")
        graded[question_id] = {
            "questionId": question_id,
            "selectedAnswerIndex": selected,
            "isCorrect": selected == correct_by_id[question_id],
        }
    return list(graded.values())


def percentage(score: int, total: int) -> int:
    if total <= 0:
        return 0
    # Round half up
    return int(score * 100 / total + 0.5)


def serialize_result(result: QuizResult) -> dict:
    return {
        "id": result.id,
        "lectureId": result.lecture_id,
        "score": result.score,
        "total": result.total,
        "percentage": result.percentage,
        "timeSpent": result.time_spent,
        "gradedDetails": result.answers,
        "createdAt": result.created_at,
    }


async def _load_lecture(db: AsyncSession, lecture_id: str) -> Lecture:
    result = await db.execute(select(Lecture).filter(Lecture.id == lecture_id))
    lecture = result.scalar_one_or_none()
    if lecture is None:
        raise NotFoundError(f"Lecture with ID {lecture_id} not found", field="lectureId", id=lecture_id)
    return lecture


async def submit_quiz_result(db: AsyncSession, result_id: str, lecture_id: str, answers: List[dict],
                             time_spent: Optional[int] = None, user_id: Optional[int] = None) -> Tuple[dict, bool]:
    """
    Grade and store a finished quiz. Upsert by the client-generated id:
    a resubmission returns the stored result and `created` is False.
    """
    existing = await db.get(QuizResult, result_id)
    if existing is not None:
        if existing.lecture_id != lecture_id:
            raise ConflictError(
                f"Quiz result {result_id} was already submitted for another lecture",
                field="id",
                id=result_id,
            )
        logger.info(f"Quiz result {result_id} already stored, returning existing")
        return serialize_result(existing), False

    lecture = await _load_lecture(db, lecture_id)
    graded = grade_answers(lecture.questions or [], answers)
    if not graded:
        raise EntityValidationError("No valid answers to grade", field="answers", code="InvalidAnswers")

    score = sum(1 for item in graded if item["isCorrect"])
    result = QuizResult(
        id=result_id,
        lecture_id=lecture_id,
        score=score,
        total=len(graded),
        percentage=percentage(score, len(graded)),
        time_spent=time_spent,
        user_id=user_id,
        answers=graded,
    )
    db.add(result)
    try:
        await db.commit()
    except IntegrityError:
        # Same id submitted concurrently; the other request won
        await db.rollback()
        stored = await db.get(QuizResult, result_id)
        if stored is None:
            raise
        return serialize_result(stored), False

    logger.info(f"Quiz graded & saved: {score}/{len(graded)} for lecture {lecture_id}")
    return serialize_result(result), True


async def check_answer(db: AsyncSession, lecture_id: str, question_id: str, selected: int) -> dict:
    """Practice mode: grade one answer immediately."""
    lecture = await _load_lecture(db, lecture_id)
    question = lecture.find_question(question_id)
    if question is None:
        raise NotFoundError(f"Question {question_id} not found in lecture {lecture_id}",
                            field="questionId", id=question_id)
    return {
        "questionId": question_id,
        "isCorrect": question["correctAnswer"] == selected,
        "correctAnswer": question["correctAnswer"],
    }


async def get_performance(db: AsyncSession, user_id: int) -> dict:
    """
    Answer statistics across every quiz result the user submitted.

    Lectures are listed in the order they were first attempted; a lecture
    deleted since keeps its stats with a null title.
    """
    result = await db.execute(
        select(QuizResult, Lecture.title)
        .outerjoin(Lecture, Lecture.id == QuizResult.lecture_id)
        .filter(QuizResult.user_id == user_id)
        .order_by(QuizResult.created_at, QuizResult.id)
    )

    by_lecture = {}
    answered = correct = 0
    for quiz_result, title in result.all():
        entry = by_lecture.setdefault(quiz_result.lecture_id, {
            "lectureId": quiz_result.lecture_id,
            "title": title,
            "total": 0,
            "correct": 0,
        })
        for graded in quiz_result.answers or []:
            entry["total"] += 1
            answered += 1
            if graded.get("isCorrect"):
                entry["correct"] += 1
                correct += 1

    for entry in by_lecture.values():
        entry["accuracy"] = percentage(entry["correct"], entry["total"])

    logger.info(f"Loaded performance for user {user_id}: {answered} answers over {len(by_lecture)} lectures")
    return {
        "totalQuestionsAnswered": answered,
        "correctAnswers": correct,
        "overallAccuracy": percentage(correct, answered),
        "byLecture": list(by_lecture.values()),
    }
