"""
ai/app.py

Developer endpoints for exercising the extractors in isolation
(no storage upload, nothing persisted).
- main.py mounts it: from ai.app import router
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from ai.gemini import (
    AUDIO_MODEL,
    MODEL,
    GeminiAudioExtractor,
    GeminiImageExtractor,
    is_ai_available,
)
from config import MAX_FILE_BYTES, PipelineSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])

image_extractor = GeminiImageExtractor()
audio_extractor = GeminiAudioExtractor()


async def _read_upload_bytes(upload: UploadFile, prefix: str) -> bytes:
    content_type = (upload.content_type or "").lower()
    if not content_type.startswith(prefix):
        raise HTTPException(status_code=400, detail=f"Expected a {prefix}* file, got {upload.content_type}")
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    if len(data) > MAX_FILE_BYTES:
        raise HTTPException(status_code=413, detail=f"File exceeds {MAX_FILE_BYTES} bytes.")
    return data


@router.post("/extract/image")
async def extract_image(image: UploadFile = File(...)):
    """Run OCR + summary on a single image."""
    data = await _read_upload_bytes(image, "image/")
    logger.info(f"[AI] Test image extraction - {image.filename}, {len(data)} bytes")
    timeout = PipelineSettings.from_env().image_timeout
    try:
        result = await asyncio.wait_for(image_extractor.extract(data, image.content_type), timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"Image extraction timed out after {timeout:g}s")
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error)
    return {"status": "success", "data": {"ocr_text": result.text, "summary": result.summary}}


@router.post("/extract/audio")
async def extract_audio(audio: UploadFile = File(...)):
    """Transcribe a single recording."""
    data = await _read_upload_bytes(audio, "audio/")
    logger.info(f"[AI] Test transcription - {audio.filename}, {len(data)} bytes")
    timeout = PipelineSettings.from_env().audio_timeout
    try:
        result = await asyncio.wait_for(audio_extractor.transcribe(data, audio.content_type), timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"Transcription timed out after {timeout:g}s")
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error)
    return {"status": "success", "data": {"transcribed_text": result.text}}


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "has_credentials": is_ai_available(),
        "model": MODEL,
        "audio_model": AUDIO_MODEL,
    }
