"""Exceptions raised by the photo normalisation pipeline."""

from __future__ import annotations


class PhotoPipelineError(RuntimeError):
    """Base class for photo pipeline failures."""


class DecodeError(PhotoPipelineError):
    """Raised when the source file is not a readable, supported image."""

    def __init__(self, message: str, source_name: str | None = None) -> None:
        self.source_name = source_name
        super().__init__(message)


class EncodeError(PhotoPipelineError):
    """Raised when the JPEG encoder produces no output."""

    def __init__(self, message: str, quality: float | None = None) -> None:
        self.quality = quality
        super().__init__(message)


class PipelineUnavailableError(PhotoPipelineError):
    """Raised when the imaging backend cannot encode JPEG at all."""


class BatchNotReadyError(PhotoPipelineError):
    """Raised when a batch below the minimum photo count is submitted."""

    def __init__(self, shortfall: int) -> None:
        self.shortfall = shortfall
        super().__init__(f"Batch needs {shortfall} more photo(s) before it can be submitted.")
