from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class AnalysisRecord(Base):
    __tablename__ = "analysis_records"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String(20), nullable=False, index=True)  # "task" / "idea" / "mood"
    title = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)

    # task
    time = Column(String(20), nullable=True)  # HH:mm
    date = Column(String(20), nullable=True)  # YYYY-MM-DD
    location = Column(Text, nullable=True)
    reminders = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=True)  # "pending" / "completed"
    completed = Column(Boolean, nullable=True)

    # mood
    emotion_type = Column(String(50), nullable=True)
    intensity = Column(Float, nullable=True)  # 1-10

    tags = Column(JSON, nullable=False, default=list)
    keywords = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    attachments = relationship(
        "Attachment",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="Attachment.display_order",
    )


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(
        Integer, ForeignKey("analysis_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    input_type = Column(String(20), nullable=False, index=True)  # "text" / "image" / "audio"

    file_name = Column(Text, nullable=True)
    file_url = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)

    transcribed_text = Column(Text, nullable=True)
    ocr_text = Column(Text, nullable=True)
    raw_text = Column(Text, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)

    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    record = relationship("AnalysisRecord", back_populates="attachments")


RECORD_COLUMNS = (
    "id", "category", "title", "content", "summary",
    "time", "date", "location", "reminders", "status", "completed",
    "emotion_type", "intensity", "tags", "keywords",
    "created_at", "updated_at", "deleted_at",
)

ATTACHMENT_COLUMNS = (
    "id", "record_id", "input_type", "file_name", "file_url", "file_size", "mime_type",
    "transcribed_text", "ocr_text", "raw_text", "processed", "display_order", "created_at",
)


def record_to_dict(record: AnalysisRecord, with_attachments: bool = False) -> dict:
    data = {name: getattr(record, name) for name in RECORD_COLUMNS}
    if with_attachments:
        data["attachments"] = [attachment_to_dict(a) for a in record.attachments]
    return data


def attachment_to_dict(attachment: Attachment) -> dict:
    return {name: getattr(attachment, name) for name in ATTACHMENT_COLUMNS}
