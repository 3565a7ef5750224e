"""
Value types passed between pipeline stages.

All of these are transient: they live for one ingestion request only.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

IMAGE = "image"
AUDIO = "audio"
TEXT = "text"


@dataclass(frozen=True)
class RawFile:
    """One uploaded file, backed either by a spooled local path or an in-memory buffer."""

    filename: str
    media_type: str
    size: int
    path: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"File {self.filename} has neither a path nor a buffer")
        with open(self.path, "rb") as f:
            return f.read()

    def discard(self) -> None:
        """Delete the local spooled copy, if any."""
        if not self.path:
            return
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"[Cleanup] Failed to delete temp file {self.path}: {e}")


@dataclass
class InputBundle:
    text: Optional[str] = None
    images: List[RawFile] = field(default_factory=list)
    audio: List[RawFile] = field(default_factory=list)

    def has_input(self) -> bool:
        return bool(self.text and self.text.strip()) or bool(self.images) or bool(self.audio)

    def files(self) -> List[RawFile]:
        return [*self.images, *self.audio]

    def discard_files(self) -> None:
        for raw_file in self.files():
            raw_file.discard()


@dataclass(frozen=True)
class ExtractionResult:
    """In-band result of an extractor call. Extractors report failure here instead of raising."""

    text: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AttachmentDraft:
    input_type: str
    filename: str
    size: int
    mime_type: str
    reference: Optional[str] = None
    ocr_text: Optional[str] = None
    transcribed_text: Optional[str] = None
    processed: bool = False
    # set when the upload failed but extraction still went ahead
    upload_error: Optional[str] = None


@dataclass(frozen=True)
class FileSuccess:
    text: Optional[str]
    attachment: AttachmentDraft


@dataclass(frozen=True)
class FileFailure:
    filename: str
    error_message: str
    reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "error": self.error_message}


FileOutcome = Union[FileSuccess, FileFailure]


@dataclass
class BatchResult:
    texts: List[str] = field(default_factory=list)
    attachments: List[AttachmentDraft] = field(default_factory=list)
    failures: List[FileFailure] = field(default_factory=list)


@dataclass
class PipelineResult:
    record: Dict[str, Any]
    failures: List[FileFailure] = field(default_factory=list)
    # files that were analyzed but have no permanent storage reference
    degraded: List[Dict[str, str]] = field(default_factory=list)

    def warnings(self) -> List[str]:
        warnings = []
        if self.failures:
            names = ", ".join(f.filename for f in self.failures)
            warnings.append(f"Some files failed to process: {names}")
        if self.degraded:
            names = ", ".join(d["filename"] for d in self.degraded)
            warnings.append(f"Some files could not be stored permanently: {names}")
        return warnings
