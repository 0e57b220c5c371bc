from sqlalchemy import Column, String, JSON
from sqlalchemy.ext.mutable import MutableList
from ..core.database import Base
from .timestamps import TimestampMixin


class Lecture(TimestampMixin, Base):
    __tablename__ = "lectures"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    # Optional: a lecture may exist without being attached to a subject
    subject_id = Column(String, index=True, nullable=True)

    # Embedded documents: [{"id", "text", "options", "correctAnswer"}, ...]
    questions = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    def find_question(self, question_id: str):
        for question in self.questions or []:
            if question.get("id") == question_id:
                return question
        return None
