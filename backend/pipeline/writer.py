"""
Atomic persistence of one analysis record and all of its attachments.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from helpers.errors import PersistenceFailure, PersistenceInvariantViolation
from models.pipeline import AUDIO, IMAGE, TEXT, AttachmentDraft
from models.records import AnalysisRecord, Attachment, attachment_to_dict, record_to_dict
from pipeline.capabilities import RecordStore

logger = logging.getLogger(__name__)


class SqlRecordStore:
    """RecordStore backed by a SQLAlchemy session per transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def transaction(self):
        with self.session_factory() as session:
            with session.begin():
                yield session

    def insert_record(self, fields: Dict[str, Any], tx: Session) -> Dict[str, Any]:
        record = AnalysisRecord(**fields)
        tx.add(record)
        tx.flush()
        tx.refresh(record)
        return record_to_dict(record)

    def insert_attachment(self, fields: Dict[str, Any], tx: Session) -> Dict[str, Any]:
        attachment = Attachment(**fields)
        tx.add(attachment)
        tx.flush()
        return attachment_to_dict(attachment)


def _media_row(record_id: int, attachment: AttachmentDraft, display_order: int) -> Dict[str, Any]:
    return {
        "record_id": record_id,
        "input_type": attachment.input_type,
        "file_name": attachment.filename,
        "file_url": attachment.reference,
        "file_size": attachment.size,
        "mime_type": attachment.mime_type,
        "raw_text": None,
        "ocr_text": attachment.ocr_text if attachment.input_type == IMAGE else None,
        "transcribed_text": attachment.transcribed_text if attachment.input_type == AUDIO else None,
        "processed": attachment.processed,
        "display_order": display_order,
    }


class TransactionalWriter:
    def __init__(self, store: RecordStore):
        self.store = store

    def save(
        self,
        record_fields: Dict[str, Any],
        image_attachments: List[AttachmentDraft],
        audio_attachments: List[AttachmentDraft],
        text_input: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Insert the record, then image rows, audio rows and finally the direct
        text row, all in one transaction. display_order runs 0..n-1 across
        that sequence. Nothing is visible unless every insert succeeds.
        """
        try:
            with self.store.transaction() as tx:
                saved = self.store.insert_record(record_fields, tx)
                record_id = saved.get("id") if saved else None
                if record_id is None:
                    raise PersistenceInvariantViolation("Database did not return an id for the new record")

                order = 0
                for attachment in [*image_attachments, *audio_attachments]:
                    self.store.insert_attachment(_media_row(record_id, attachment, order), tx)
                    order += 1

                if text_input:
                    self.store.insert_attachment(
                        {
                            "record_id": record_id,
                            "input_type": TEXT,
                            "file_name": None,
                            "file_url": None,
                            "file_size": None,
                            "mime_type": "text/plain",
                            "raw_text": text_input,
                            "ocr_text": None,
                            "transcribed_text": None,
                            "processed": True,
                            "display_order": order,
                        },
                        tx,
                    )
        except PersistenceFailure:
            logger.error("[DB] Transaction rolled back: invariant violated")
            raise
        except Exception as e:
            logger.error(f"[DB] Transaction rolled back: {type(e).__name__}: {e}")
            raise PersistenceFailure(f"Failed to save record: {e}") from e

        logger.info(f"[DB] Saved record {record_id} with {order + (1 if text_input else 0)} attachment(s)")
        return saved
