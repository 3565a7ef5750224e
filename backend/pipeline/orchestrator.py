"""
End-to-end ingestion pipeline.

    Validating -> ProcessingMedia -> Aggregating -> Analyzing -> Persisting -> Done
                                         \\            \\            \\
                                          +------------+------------+--> Failed

ProcessingMedia never fails the pipeline; it only contributes per-file
failures, which are returned alongside the record on success.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from config import PipelineSettings
from helpers.ai_helpers import normalize_analysis
from helpers.errors import AnalyzerUnavailable, IngestionError, InputEmpty
from models.pipeline import AUDIO, IMAGE, BatchResult, InputBundle, PipelineResult
from models.schemas import AnalysisFields
from pipeline.aggregation import aggregate_texts
from pipeline.capabilities import AudioExtractor, BlobStore, ImageExtractor, RecordStore, StructuredAnalyzer
from pipeline.processing import FileProcessor, collect_references, process_batch
from pipeline.writer import TransactionalWriter

logger = logging.getLogger(__name__)


class IngestionPipeline:
    def __init__(
        self,
        blob_store: BlobStore,
        image_extractor: ImageExtractor,
        audio_extractor: AudioExtractor,
        analyzer: StructuredAnalyzer,
        record_store: RecordStore,
        settings: Optional[PipelineSettings] = None,
    ):
        self.blob_store = blob_store
        self.analyzer = analyzer
        self.settings = settings or PipelineSettings()
        self.image_processor = FileProcessor(
            IMAGE, blob_store, image_extractor=image_extractor, settings=self.settings
        )
        self.audio_processor = FileProcessor(
            AUDIO, blob_store, audio_extractor=audio_extractor, settings=self.settings
        )
        self.writer = TransactionalWriter(record_store)

    async def ingest(self, bundle: InputBundle) -> PipelineResult:
        # Validating
        if not bundle.has_input():
            raise InputEmpty()
        # stored verbatim; the aggregator strips its own copy
        text_input = bundle.text if bundle.text and bundle.text.strip() else None
        logger.info(
            f"[Pipeline] Start - text: {'yes' if text_input else 'no'}, "
            f"images: {len(bundle.images)}, audio: {len(bundle.audio)}"
        )

        # ProcessingMedia: both modalities at once, each batch joins all of its files
        image_batch, audio_batch = await asyncio.gather(
            process_batch(self.image_processor, bundle.images),
            process_batch(self.audio_processor, bundle.audio),
        )
        failures = [*image_batch.failures, *audio_batch.failures]
        if failures:
            logger.warning(f"[Pipeline] {len(failures)} file(s) failed: {[f.filename for f in failures]}")

        try:
            # Aggregating
            corpus = aggregate_texts(text_input, image_batch.texts, audio_batch.texts)

            # Analyzing
            fields = await self._analyze(corpus)

            # Persisting
            record = await asyncio.to_thread(
                self.writer.save,
                self._record_fields(fields, corpus),
                image_batch.attachments,
                audio_batch.attachments,
                text_input,
            )
        except Exception as e:
            logger.error(f"[Pipeline] Failed: {type(e).__name__}: {e}")
            await self._discard_uploads(collect_references([image_batch, audio_batch]))
            raise

        # Done: objects of failed files are not referenced by any row
        await self._discard_uploads(f.reference for f in failures if f.reference)
        logger.info(f"[Pipeline] Done - record {record['id']} ({record['category']})")
        return PipelineResult(
            record=record,
            failures=failures,
            degraded=self._degraded([image_batch, audio_batch]),
        )

    async def _analyze(self, corpus: str) -> AnalysisFields:
        timeout = self.settings.analyzer_timeout
        try:
            raw = await asyncio.wait_for(self.analyzer.analyze(corpus), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise AnalyzerUnavailable(f"Analyzer timed out after {timeout:g}s") from e
        except IngestionError:
            raise
        except Exception as e:
            raise AnalyzerUnavailable(f"Analyzer call failed: {e}") from e
        return normalize_analysis(raw)

    @staticmethod
    def _record_fields(fields: AnalysisFields, corpus: str) -> Dict[str, Any]:
        data = fields.model_dump()
        if not data.get("content"):
            data["content"] = corpus
        return data

    @staticmethod
    def _degraded(batches: List[BatchResult]) -> List[Dict[str, str]]:
        return [
            {"filename": a.filename, "message": a.upload_error}
            for batch in batches
            for a in batch.attachments
            if a.upload_error
        ]

    async def _discard_uploads(self, references: Iterable[str]) -> None:
        """Best-effort removal of stored objects no record points to."""
        references = list(references)
        if not references:
            return

        async def _delete(reference: str) -> None:
            try:
                await asyncio.wait_for(
                    self.blob_store.delete(reference), timeout=self.settings.delete_timeout
                )
            except Exception as e:
                logger.warning(f"[Upload] Could not delete orphaned object {reference}: {e}")

        await asyncio.gather(*(_delete(r) for r in references))
