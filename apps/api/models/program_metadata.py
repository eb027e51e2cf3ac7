"""Free-form key/value metadata attached to programs."""

from sqlalchemy import Column, Integer, String, Text

from database import Base


class ProgramMetadata(Base):
    __tablename__ = "program_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    program_id = Column(Integer, nullable=False, index=True)
    key = Column(String, nullable=False)
    value = Column(Text, nullable=True)
