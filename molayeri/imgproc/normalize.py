"""Photo normalisation: centered crop, bounded resize and size-budgeted JPEG encoding."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Callable

from PIL import Image, ImageOps, features

from molayeri.config.settings import Settings
from molayeri.imgproc.errors import DecodeError, EncodeError, PipelineUnavailableError
from molayeri.imgproc.geometry import AspectRatio, compute_crop_region, output_size
from molayeri.metrics.prometheus_exporter import (
    photo_budget_exceeded_total,
    photo_encode_attempts,
    photo_normalized_total,
)

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"

JpegEncoder = Callable[[Image.Image, int], bytes]


class EncodeOutcome(str, Enum):
    """Whether the final encode met the byte budget."""

    WITHIN_BUDGET = "within_budget"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass(frozen=True, slots=True)
class NormalizationOptions:
    """Parameters of the crop, resize and re-encode stages."""

    aspect_ratio: AspectRatio = AspectRatio(16, 9)
    max_width: int = 1280
    byte_budget: int = 160 * 1024
    initial_quality: float = 0.82
    quality_decrement: float = 0.07
    quality_floor: float = 0.20

    def __post_init__(self) -> None:
        if self.max_width <= 0:
            raise ValueError("max_width must be positive.")
        if self.byte_budget <= 0:
            raise ValueError("byte_budget must be positive.")
        if not 0 < self.quality_floor <= self.initial_quality <= 1:
            raise ValueError("Expected 0 < quality_floor <= initial_quality <= 1.")
        if self.decrement_percent < 1:
            raise ValueError("quality_decrement must be at least 0.01.")

    # Qualities are scheduled in whole percent so every step is exact.
    @property
    def initial_percent(self) -> int:
        return round(self.initial_quality * 100)

    @property
    def decrement_percent(self) -> int:
        return round(self.quality_decrement * 100)

    @property
    def floor_percent(self) -> int:
        return max(1, round(self.quality_floor * 100))

    @property
    def max_attempts(self) -> int:
        """Upper bound on encode attempts for one photo."""

        span = self.initial_percent - self.floor_percent
        return -(-span // self.decrement_percent) + 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "NormalizationOptions":
        return cls(
            aspect_ratio=AspectRatio.parse(settings.photo_aspect_ratio),
            max_width=settings.photo_max_width,
            byte_budget=settings.photo_byte_budget,
            initial_quality=settings.photo_initial_quality,
            quality_decrement=settings.photo_quality_decrement,
            quality_floor=settings.photo_quality_floor,
        )


@dataclass(slots=True)
class EncodeResult:
    """Last JPEG produced by the re-encode loop."""

    data: bytes
    quality: float
    attempts: int
    outcome: EncodeOutcome

    @property
    def within_budget(self) -> bool:
        return self.outcome is EncodeOutcome.WITHIN_BUDGET


@dataclass(slots=True)
class NormalizedPhoto:
    """A cropped, resized JPEG ready for upload."""

    data: bytes
    width: int
    height: int
    quality: float
    attempts: int
    within_budget: bool
    content_type: str = JPEG_CONTENT_TYPE
    is_cover: bool = False
    source_name: str | None = None
    photo_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    """Encode ``image`` as an optimised JPEG at ``quality`` percent."""

    buffer = BytesIO()
    try:
        image.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError) as exc:
        raise EncodeError(f"JPEG encoder failed at quality {quality}.", quality=quality / 100) from exc
    return buffer.getvalue()


def ensure_jpeg_support() -> None:
    """Raise PipelineUnavailableError when Pillow was built without libjpeg."""

    if not features.check_codec("jpg"):
        raise PipelineUnavailableError("Pillow is installed without JPEG support.")


class PhotoNormalizer:
    """Turns arbitrary image bytes into a budgeted JPEG of a fixed aspect ratio."""

    def __init__(
        self,
        options: NormalizationOptions | None = None,
        encoder: JpegEncoder = encode_jpeg,
    ) -> None:
        self._options = options or NormalizationOptions()
        self._encoder = encoder

    @property
    def options(self) -> NormalizationOptions:
        return self._options

    def decode(self, data: bytes, source_name: str | None = None) -> Image.Image:
        """Load bytes into an upright RGB image."""

        if not data:
            raise DecodeError("File is empty.", source_name)
        try:
            with Image.open(BytesIO(data)) as opened:
                opened.load()
                return _flatten_to_rgb(ImageOps.exif_transpose(opened))
        except Image.DecompressionBombError as exc:
            raise DecodeError("Image resolution is too large to process.", source_name) from exc
        except (OSError, SyntaxError, ValueError) as exc:
            raise DecodeError(f"Unsupported or corrupt image: {exc}", source_name) from exc

    def render(self, image: Image.Image) -> Image.Image:
        """Crop to the target ratio around the center and scale down to the max width."""

        ratio = self._options.aspect_ratio
        region = compute_crop_region(image.width, image.height, ratio)
        size = output_size(region, ratio, self._options.max_width)
        logger.debug(
            "Cropping %sx%s source to %sx%s at (%s, %s), output %sx%s",
            image.width,
            image.height,
            region.width,
            region.height,
            region.x,
            region.y,
            *size,
        )
        return image.resize(size, Image.Resampling.LANCZOS, box=region.box)

    def encode_within_budget(self, image: Image.Image) -> EncodeResult:
        """
        Encode at decreasing quality until the JPEG fits the byte budget.

        Quality drops by a fixed step and the final attempt is made exactly at the
        floor. When even that attempt is too large it is still returned, flagged
        as ``BUDGET_EXCEEDED``.
        """

        options = self._options
        quality = options.initial_percent
        attempts = 0
        while True:
            data = self._encoder(image, quality)
            attempts += 1
            if not data:
                raise EncodeError("JPEG encoder returned no data.", quality=quality / 100)

            logger.debug("Encode attempt %s at quality %s: %s bytes", attempts, quality, len(data))
            if len(data) <= options.byte_budget:
                return EncodeResult(data, quality / 100, attempts, EncodeOutcome.WITHIN_BUDGET)
            if quality <= options.floor_percent:
                return EncodeResult(data, quality / 100, attempts, EncodeOutcome.BUDGET_EXCEEDED)
            quality = max(quality - options.decrement_percent, options.floor_percent)

    def normalize(self, data: bytes, source_name: str | None = None) -> NormalizedPhoto:
        """Run decode, render and encode for one file."""

        source = self.decode(data, source_name)
        try:
            rendered = self.render(source)
        finally:
            source.close()

        try:
            result = self.encode_within_budget(rendered)
            width, height = rendered.size
        finally:
            rendered.close()

        photo_normalized_total.inc()
        photo_encode_attempts.observe(result.attempts)
        if not result.within_budget:
            photo_budget_exceeded_total.inc()
            logger.warning(
                "Photo %s stays above the %s byte budget at the quality floor (%s bytes); keeping it.",
                source_name or "<unnamed>",
                self._options.byte_budget,
                len(result.data),
            )

        logger.info(
            "Normalised %s to %sx%s, %s bytes at quality %.2f after %s attempt(s)",
            source_name or "<unnamed>",
            width,
            height,
            len(result.data),
            result.quality,
            result.attempts,
        )
        return NormalizedPhoto(
            data=result.data,
            width=width,
            height=height,
            quality=result.quality,
            attempts=result.attempts,
            within_budget=result.within_budget,
            source_name=source_name,
        )


def _flatten_to_rgb(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing transparent pixels onto white."""

    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        rgba.close()
        image.close()
        return background
    converted = image.convert("RGB")
    image.close()
    return converted
