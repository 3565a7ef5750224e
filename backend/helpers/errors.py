"""
Error taxonomy for the ingestion pipeline.

File-scoped errors (FileProcessingFailure) never leave the batch processor;
everything else unwinds to the caller with no partial record persisted.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for every pipeline error. `status_code` is the HTTP mapping."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputEmpty(IngestionError):
    status_code = 400

    def __init__(self, message: str = "Provide at least one of text, image or audio input."):
        super().__init__(message)


class FileProcessingFailure(IngestionError):
    """A single file could not be processed. Always recovered into the failures list."""

    status_code = 422

    def __init__(self, filename: str, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.filename = filename
        # storage reference obtained before the failure, if any
        self.reference = reference


class EmptyCorpus(IngestionError):
    status_code = 422

    def __init__(
        self,
        message: str = (
            "No analyzable text could be extracted. "
            "Make sure images contain text or recordings are audible."
        ),
    ):
        super().__init__(message)


class AnalyzerError(IngestionError):
    status_code = 502


class AnalyzerMalformedResponse(AnalyzerError):
    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class UnsupportedCategory(AnalyzerError):
    def __init__(self, category):
        super().__init__(f"Analyzer returned unsupported category: {category!r}")
        self.category = category


class AnalyzerUnavailable(AnalyzerError):
    """Transport failure or deadline expiry while calling the analyzer."""


class PersistenceFailure(IngestionError):
    status_code = 500


class PersistenceInvariantViolation(PersistenceFailure):
    pass
