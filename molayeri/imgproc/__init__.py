"""Photo normalisation pipeline and batch bookkeeping."""

from .batch import (
    BatchAddResult,
    BatchLimits,
    BatchOrchestrator,
    BatchReadiness,
    PhotoBatch,
    PreviewRegistry,
    SelectedFile,
)
from .errors import BatchNotReadyError, DecodeError, EncodeError, PipelineUnavailableError
from .geometry import AspectRatio, CropRegion, compute_crop_region
from .normalize import EncodeOutcome, NormalizationOptions, NormalizedPhoto, PhotoNormalizer

__all__ = [
    "AspectRatio",
    "BatchAddResult",
    "BatchLimits",
    "BatchNotReadyError",
    "BatchOrchestrator",
    "BatchReadiness",
    "CropRegion",
    "DecodeError",
    "EncodeError",
    "EncodeOutcome",
    "NormalizationOptions",
    "NormalizedPhoto",
    "PhotoBatch",
    "PhotoNormalizer",
    "PipelineUnavailableError",
    "PreviewRegistry",
    "SelectedFile",
    "compute_crop_region",
]
