"""Per-entity-type identity counter."""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class IdCounter(Base):
    """Last allocated integer id for one entity type.

    `version` is bumped on every write; allocators compare-and-set on it.
    """

    __tablename__ = "id_counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
