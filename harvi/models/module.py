from sqlalchemy import Column, String
from ..core.database import Base
from .timestamps import TimestampMixin


class Module(TimestampMixin, Base):
    __tablename__ = "modules"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    # References years.id; integrity is kept by the cascade engine, not the database
    year_id = Column(String, index=True, nullable=False)
