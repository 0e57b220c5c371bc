from sqlalchemy import Column, String
from ..core.database import Base
from .timestamps import TimestampMixin


class Year(TimestampMixin, Base):
    __tablename__ = "years"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    icon = Column(String, nullable=True)
