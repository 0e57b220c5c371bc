from sqlalchemy import Column, Integer, String, DateTime, JSON
from ..core.database import Base
from .timestamps import utcnow


class QuizResult(Base):
    __tablename__ = "quiz_results"

    # Generated by the client so that offline resubmissions upsert instead of duplicating
    id = Column(String, primary_key=True, index=True)
    lecture_id = Column(String, index=True, nullable=False)
    # Token subject of the submitter; None for anonymous guests
    user_id = Column(Integer, index=True, nullable=True)
    score = Column(Integer, nullable=False)
    total = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    time_spent = Column(Integer, nullable=True)
    answers = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
