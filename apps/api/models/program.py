"""Program model for curated video/podcast entries."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text

from database import Base


PROGRAM_STATUSES = ("draft", "published", "archived")
CONTENT_TYPES = ("video", "podcast")
VIDEO_SOURCES = ("youtube", "upload", "external")
VIDEO_TYPES = ("podcast", "documentary", "lecture", "other")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Program(Base):
    """Catalog entry exposed to the discovery surface once published.

    category_id/language_id/created_by are soft references: the store does not
    enforce them, the catalog service checks them on write and the response
    assembler tolerates dangling ones on read.
    """

    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    duration = Column(Integer, nullable=True)
    publish_date = Column(Date, nullable=True)
    status = Column(String, nullable=False, default="draft", index=True)
    content_type = Column(String, nullable=False, default="video", index=True)
    video_source = Column(String, nullable=False, default="youtube", index=True)
    video_type = Column(String, nullable=False, default="other")
    thumbnail_url = Column(String, nullable=True)
    video_url = Column(String, nullable=True)
    audio_url = Column(String, nullable=True)
    youtube_url = Column(String, nullable=True)
    youtube_video_id = Column(String, nullable=True)
    youtube_thumbnail = Column(String, nullable=True)
    uploaded_video_url = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    file_name = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    view_count = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    category_id = Column(Integer, nullable=True, index=True)
    language_id = Column(Integer, nullable=True, index=True)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
