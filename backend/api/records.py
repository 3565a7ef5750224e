"""
Record ingestion and management endpoints.

This module handles:
- Multi-modal ingestion (text + images + voice recordings) into one record
- Record listing / lookup with attachments
- Soft delete
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ai.gemini import GeminiAnalyzer, GeminiAudioExtractor, GeminiImageExtractor
from config import MAX_AUDIO, MAX_FILE_BYTES, MAX_IMAGES, UPLOAD_DIR, PipelineSettings
from database import SUPABASE_BUCKET, SessionLocal, supabase
from helpers.errors import IngestionError
from helpers.storage_helpers import SupabaseBlobStore
from models.pipeline import InputBundle, RawFile
from models.records import AnalysisRecord, record_to_dict
from models.schemas import IngestResponseData
from pipeline.orchestrator import IngestionPipeline
from pipeline.writer import SqlRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["Records"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        blob_store=SupabaseBlobStore(supabase, SUPABASE_BUCKET),
        image_extractor=GeminiImageExtractor(),
        audio_extractor=GeminiAudioExtractor(),
        analyzer=GeminiAnalyzer(),
        record_store=SqlRecordStore(SessionLocal),
        settings=PipelineSettings.from_env(),
    )


async def _spool_upload(upload: UploadFile, upload_dir: str) -> RawFile:
    """Copy an incoming upload to a local temp file owned by the pipeline run."""
    data = await upload.read()
    filename = upload.filename or "upload"
    if len(data) > MAX_FILE_BYTES:
        raise HTTPException(
            status_code=413, detail=f"File {filename} exceeds the {MAX_FILE_BYTES} byte limit"
        )
    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, f"{uuid.uuid4().hex}{os.path.splitext(filename)[1].lower()}")
    with open(path, "wb") as f:
        f.write(data)
    return RawFile(
        filename=filename,
        media_type=upload.content_type or "application/octet-stream",
        size=len(data),
        path=path,
    )


@router.post("/analyze")
async def analyze_content(
    text: Optional[str] = Form(None),
    image: Optional[List[UploadFile]] = File(None),
    audio: Optional[List[UploadFile]] = File(None),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Analyze any combination of text, images and voice recordings.

    - At least one input is required
    - Images and recordings are uploaded to storage and converted to text
    - All text is analyzed together into one task / idea / mood record
    - The record and every raw input are saved in one transaction
    - Files that failed are reported in warnings; the record is still saved
    """
    images = image or []
    audios = audio or []
    if len(images) > MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} images are allowed")
    if len(audios) > MAX_AUDIO:
        raise HTTPException(status_code=400, detail=f"At most {MAX_AUDIO} audio files are allowed")

    bundle = InputBundle(text=text)
    try:
        for upload in images:
            bundle.images.append(await _spool_upload(upload, UPLOAD_DIR))
        for upload in audios:
            bundle.audio.append(await _spool_upload(upload, UPLOAD_DIR))

        result = await pipeline.ingest(bundle)
    except HTTPException:
        raise
    except IngestionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.exception("[Analyze] Unexpected error")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        bundle.discard_files()

    data = IngestResponseData(**result.record).model_dump(mode="json")
    response = {
        "status": "success",
        "message": "Content analyzed",
        "data": data,
        "failed_files": [f.to_dict() for f in result.failures],
    }
    warnings = result.warnings()
    if warnings:
        response["warnings"] = warnings
    return response


@router.get("")
async def get_records(category: Optional[str] = None, db: Session = Depends(get_db)):
    """
    List non-deleted records, newest first, with their attachments.
    Optional category filter (task / idea / mood).
    """
    query = (
        select(AnalysisRecord)
        .options(selectinload(AnalysisRecord.attachments))
        .where(AnalysisRecord.deleted_at.is_(None))
    )
    if category:
        query = query.where(AnalysisRecord.category == category)
    query = query.order_by(AnalysisRecord.created_at.desc(), AnalysisRecord.id.desc())
    records = db.scalars(query).all()
    return {"status": "success", "data": [record_to_dict(r, with_attachments=True) for r in records]}


@router.get("/{record_id}")
async def get_record(record_id: int, db: Session = Depends(get_db)):
    record = db.get(AnalysisRecord, record_id)
    if record is None or record.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"status": "success", "data": record_to_dict(record, with_attachments=True)}


@router.delete("/{record_id}")
async def delete_record(record_id: int, db: Session = Depends(get_db)):
    """
    Soft delete a record.

    - Sets deleted_at timestamp
    - Does not physically delete the record or its attachments
    """
    record = db.get(AnalysisRecord, record_id)
    if record is None or record.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Record not found")
    record.deleted_at = datetime.now(timezone.utc)
    db.commit()
    return {"status": "success", "message": "Record deleted"}
