"""
Per-file processing (upload + extraction) and the per-modality batch fan-out.

A file never takes its siblings down with it: every failure is folded into a
FileFailure, and the batch only merges results after all tasks have settled.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Set

from config import PipelineSettings
from helpers.errors import FileProcessingFailure
from models.pipeline import (
    AUDIO,
    IMAGE,
    AttachmentDraft,
    BatchResult,
    ExtractionResult,
    FileFailure,
    FileOutcome,
    FileSuccess,
    RawFile,
)
from pipeline.capabilities import AudioExtractor, BlobStore, ImageExtractor

logger = logging.getLogger(__name__)

_MEDIA_PREFIX = {IMAGE: "image/", AUDIO: "audio/"}
_MEDIA_LABEL = {IMAGE: "an image", AUDIO: "an audio file"}


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class FileProcessor:
    """Upload + extraction for one modality."""

    def __init__(
        self,
        modality: str,
        blob_store: BlobStore,
        image_extractor: Optional[ImageExtractor] = None,
        audio_extractor: Optional[AudioExtractor] = None,
        settings: Optional[PipelineSettings] = None,
    ):
        if modality not in _MEDIA_PREFIX:
            raise ValueError(f"Unsupported modality: {modality}")
        if modality == IMAGE and image_extractor is None:
            raise ValueError("image modality requires an image extractor")
        if modality == AUDIO and audio_extractor is None:
            raise ValueError("audio modality requires an audio extractor")
        self.modality = modality
        self.blob_store = blob_store
        self.image_extractor = image_extractor
        self.audio_extractor = audio_extractor
        self.settings = settings or PipelineSettings()
        self._late_cleanups: Set[asyncio.Task] = set()

    async def process(self, raw_file: RawFile) -> FileOutcome:
        try:
            return await self._process(raw_file)
        except FileProcessingFailure as e:
            logger.warning(f"[{self.modality}] {raw_file.filename}: {e.message}")
            return FileFailure(raw_file.filename, e.message, e.reference)
        except Exception as e:
            logger.exception(f"[{self.modality}] Unexpected error processing {raw_file.filename}")
            return FileFailure(raw_file.filename, str(e) or type(e).__name__)

    async def _process(self, raw_file: RawFile) -> FileSuccess:
        # (a) media type must match the modality
        media_type = (raw_file.media_type or "").lower()
        if not media_type.startswith(_MEDIA_PREFIX[self.modality]):
            raise FileProcessingFailure(
                raw_file.filename,
                f"File {raw_file.filename} is not {_MEDIA_LABEL[self.modality]} ({raw_file.media_type})",
            )

        data = await asyncio.to_thread(raw_file.read)

        # (b) upload; failure only degrades the file
        reference, upload_error = await self._upload(raw_file, data)

        # (c) extraction; errors arrive in-band
        result = await self._extract(data, media_type, reference)
        if not result.ok:
            raise FileProcessingFailure(
                raw_file.filename,
                f"Extraction failed for {raw_file.filename}: {result.error}",
                reference=reference,
            )

        # (d) attachment
        if self.modality == IMAGE:
            text = result.text if _has_text(result.text) else result.summary
            attachment = AttachmentDraft(
                input_type=IMAGE,
                filename=raw_file.filename,
                size=raw_file.size,
                mime_type=raw_file.media_type,
                reference=reference,
                ocr_text=result.text if _has_text(result.text) else None,
                processed=_has_text(result.text),
                upload_error=upload_error,
            )
        else:
            text = result.text
            attachment = AttachmentDraft(
                input_type=AUDIO,
                filename=raw_file.filename,
                size=raw_file.size,
                mime_type=raw_file.media_type,
                reference=reference,
                transcribed_text=result.text if _has_text(result.text) else None,
                processed=_has_text(result.text),
                upload_error=upload_error,
            )

        # (e)
        return FileSuccess(text=text if _has_text(text) else None, attachment=attachment)

    async def _upload(self, raw_file: RawFile, data: bytes):
        # shielded so an upload that outlives its deadline can still be cleaned up
        task = asyncio.ensure_future(self.blob_store.upload(data, raw_file.media_type, raw_file.filename))
        try:
            reference = await asyncio.wait_for(asyncio.shield(task), timeout=self.settings.upload_timeout)
            return reference, None
        except asyncio.TimeoutError:
            message = f"upload timed out after {self.settings.upload_timeout:g}s"
            task.add_done_callback(lambda t: self._discard_late_upload(raw_file.filename, t))
        except Exception as e:
            message = str(e) or type(e).__name__
        logger.warning(f"[Upload] {raw_file.filename} not stored, continuing without reference: {message}")
        return None, message

    def _discard_late_upload(self, filename: str, task: asyncio.Future) -> None:
        """Delete an object whose upload finished after the file gave up on it."""
        if task.cancelled() or task.exception() is not None:
            return
        cleanup = task.get_loop().create_task(self._delete_late(filename, task.result()))
        self._late_cleanups.add(cleanup)
        cleanup.add_done_callback(self._late_cleanups.discard)

    async def _delete_late(self, filename: str, reference: str) -> None:
        try:
            await asyncio.wait_for(self.blob_store.delete(reference), timeout=self.settings.delete_timeout)
            logger.info(f"[Upload] Removed late upload of {filename}: {reference}")
        except Exception as e:
            logger.warning(f"[Upload] Could not delete late upload {reference}: {e}")

    async def _extract(self, data: bytes, media_type: str, reference: Optional[str]) -> ExtractionResult:
        if self.modality == IMAGE:
            call = self.image_extractor.extract(data, media_type, reference)
            timeout = self.settings.image_timeout
        else:
            call = self.audio_extractor.transcribe(data, media_type, reference)
            timeout = self.settings.audio_timeout
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            return ExtractionResult(error=f"extraction timed out after {timeout:g}s")


async def process_batch(processor: FileProcessor, files: Sequence[RawFile]) -> BatchResult:
    """
    Run `processor` over every file concurrently and merge by index once all settle.

    Texts only include successes with non-empty text; failures keep input order.
    """
    if not files:
        return BatchResult()

    outcomes = await asyncio.gather(
        *(processor.process(raw_file) for raw_file in files),
        return_exceptions=True,
    )

    result = BatchResult()
    for raw_file, outcome in zip(files, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            result.failures.append(FileFailure(raw_file.filename, str(outcome) or "processing failed"))
        elif isinstance(outcome, FileFailure):
            result.failures.append(outcome)
        else:
            if outcome.text:
                result.texts.append(outcome.text)
            result.attachments.append(outcome.attachment)
    return result


def collect_references(batches: List[BatchResult]) -> List[str]:
    """Every storage reference produced by the batches, attachments and failures alike."""
    references = []
    for batch in batches:
        references.extend(a.reference for a in batch.attachments if a.reference)
        references.extend(f.reference for f in batch.failures if f.reference)
    return references
