from sqlalchemy import Column, String
from ..core.database import Base
from .timestamps import TimestampMixin


class Subject(TimestampMixin, Base):
    __tablename__ = "subjects"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    module_id = Column(String, index=True, nullable=False)
