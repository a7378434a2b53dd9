"""Crop and resize arithmetic for fixed aspect-ratio photos."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction


def _scale_half_up(value: int, numerator: int, denominator: int) -> int:
    """Return ``value * numerator / denominator`` rounded half up, in integers."""

    return (2 * value * numerator + denominator) // (2 * denominator)


@dataclass(frozen=True, slots=True)
class AspectRatio:
    """Target width:height ratio, e.g. 16:9."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Aspect ratio terms must be positive, got {self.width}:{self.height}.")

    @property
    def value(self) -> float:
        return self.width / self.height

    @classmethod
    def parse(cls, raw: str) -> "AspectRatio":
        """Parse ``"16:9"``, ``"16/9"`` or a decimal such as ``"1.7778"``."""

        text = raw.strip()
        for separator in (":", "/", "x"):
            if separator in text:
                left, right = text.split(separator, 1)
                try:
                    return cls(int(left), int(right))
                except ValueError as exc:
                    raise ValueError(f"Invalid aspect ratio: {raw!r}") from exc
        try:
            fraction = Fraction(text).limit_denominator(100)
        except (ValueError, ZeroDivisionError) as exc:
            raise ValueError(f"Invalid aspect ratio: {raw!r}") from exc
        return cls(fraction.numerator, fraction.denominator)

    def __str__(self) -> str:
        return f"{self.width}:{self.height}"


@dataclass(frozen=True, slots=True)
class CropRegion:
    """Rectangle in source pixel space."""

    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Return the region as a Pillow ``(left, upper, right, lower)`` box."""

        return (self.x, self.y, self.x + self.width, self.y + self.height)


def compute_crop_region(source_width: int, source_height: int, ratio: AspectRatio) -> CropRegion:
    """
    Return the largest centered region of the source matching ``ratio``.

    The derived side is rounded to whole pixels, so the region's ratio matches the
    target within one pixel.
    """

    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"Source dimensions must be positive, got {source_width}x{source_height}.")

    if source_width * ratio.height > source_height * ratio.width:
        crop_height = source_height
        crop_width = _scale_half_up(source_height, ratio.width, ratio.height)
    else:
        crop_width = source_width
        crop_height = _scale_half_up(source_width, ratio.height, ratio.width)

    crop_width = min(max(crop_width, 1), source_width)
    crop_height = min(max(crop_height, 1), source_height)

    return CropRegion(
        x=(source_width - crop_width) // 2,
        y=(source_height - crop_height) // 2,
        width=crop_width,
        height=crop_height,
    )


def output_size(region: CropRegion, ratio: AspectRatio, max_width: int) -> tuple[int, int]:
    """Return the rendered size: never wider than ``max_width`` and never upscaled."""

    if max_width <= 0:
        raise ValueError(f"Maximum output width must be positive, got {max_width}.")

    width = min(max_width, region.width)
    height = max(1, _scale_half_up(width, ratio.height, ratio.width))
    return width, height
