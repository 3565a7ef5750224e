"""
Interfaces for the external services the pipeline talks to.

Production implementations live in ai/ and helpers/; tests provide in-memory
fakes. Deadlines are applied by the caller with asyncio.wait_for, so
implementations do not need to enforce their own.
"""

from contextlib import AbstractContextManager
from typing import Any, Dict, Optional, Protocol

from models.pipeline import ExtractionResult


class BlobStore(Protocol):
    async def upload(self, data: bytes, content_type: str, filename: Optional[str] = None) -> str:
        """Store the object and return its public reference. May raise."""
        ...

    async def delete(self, reference: str) -> None:
        ...


class ImageExtractor(Protocol):
    async def extract(
        self, data: bytes, mime_type: str, reference: Optional[str] = None
    ) -> ExtractionResult:
        """OCR + summary. Never raises: errors come back in ExtractionResult.error."""
        ...


class AudioExtractor(Protocol):
    async def transcribe(
        self, data: bytes, mime_type: str, reference: Optional[str] = None
    ) -> ExtractionResult:
        """Speech to text. Never raises: errors come back in ExtractionResult.error."""
        ...


class StructuredAnalyzer(Protocol):
    async def analyze(self, text: str) -> Dict[str, Any]:
        """Return the raw structured response. Raises on transport or format failure."""
        ...


class RecordStore(Protocol):
    def transaction(self) -> AbstractContextManager:
        """Commit on clean exit, roll back if the block raises."""
        ...

    def insert_record(self, fields: Dict[str, Any], tx) -> Dict[str, Any]:
        ...

    def insert_attachment(self, fields: Dict[str, Any], tx) -> Dict[str, Any]:
        ...
