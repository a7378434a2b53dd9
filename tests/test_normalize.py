"""Tests for decoding, rendering and the bounded JPEG re-encode loop."""

from __future__ import annotations

import logging
import math
from io import BytesIO

import pytest
from PIL import Image
from prometheus_client import REGISTRY

from molayeri.config.settings import Settings
from molayeri.imgproc.errors import DecodeError, EncodeError
from molayeri.imgproc.geometry import AspectRatio
from molayeri.imgproc.normalize import (
    EncodeOutcome,
    NormalizationOptions,
    PhotoNormalizer,
)


class RecordingEncoder:
    """Fake JPEG encoder returning a fixed payload size per quality."""

    def __init__(self, sizes: dict[int, int] | None = None, default: int = 500_000) -> None:
        self.sizes = sizes or {}
        self.default = default
        self.qualities: list[int] = []

    def __call__(self, image: Image.Image, quality: int) -> bytes:
        self.qualities.append(quality)
        return b"\xff" * self.sizes.get(quality, self.default)


def test_wide_photo_is_rendered_as_720p_jpeg(make_image_bytes) -> None:
    normalizer = PhotoNormalizer()

    photo = normalizer.normalize(make_image_bytes(4000, 2000), "wide.jpg")

    assert (photo.width, photo.height) == (1280, 720)
    assert photo.content_type == "image/jpeg"
    assert photo.within_budget
    assert photo.size_bytes == len(photo.data) <= 160 * 1024
    assert photo.quality == pytest.approx(0.82)
    assert not photo.is_cover
    with Image.open(BytesIO(photo.data)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (1280, 720)


def test_unreachable_budget_returns_floor_encode_without_raising() -> None:
    encoder = RecordingEncoder(default=500_000)
    normalizer = PhotoNormalizer(encoder=encoder)
    image = Image.new("RGB", (64, 36))

    result = normalizer.encode_within_budget(image)

    assert encoder.qualities == [82, 75, 68, 61, 54, 47, 40, 33, 26, 20]
    assert result.outcome is EncodeOutcome.BUDGET_EXCEEDED
    assert not result.within_budget
    assert result.quality == pytest.approx(0.20)
    assert len(result.data) == 500_000
    assert result.attempts == 10 == normalizer.options.max_attempts


def test_loop_stops_at_first_encode_within_budget() -> None:
    encoder = RecordingEncoder(sizes={82: 300_000, 75: 200_000, 68: 120_000})
    normalizer = PhotoNormalizer(encoder=encoder)

    result = normalizer.encode_within_budget(Image.new("RGB", (64, 36)))

    assert encoder.qualities == [82, 75, 68]
    assert result.within_budget
    assert result.quality == pytest.approx(0.68)
    assert result.attempts == 3


@pytest.mark.parametrize(
    ("initial", "decrement", "floor"),
    [(0.82, 0.07, 0.20), (0.82, 0.08, 0.35), (0.9, 0.1, 0.3), (0.5, 0.5, 0.1), (0.6, 0.07, 0.6)],
)
def test_quality_strictly_decreases_within_attempt_bound(initial: float, decrement: float, floor: float) -> None:
    options = NormalizationOptions(initial_quality=initial, quality_decrement=decrement, quality_floor=floor)
    encoder = RecordingEncoder()

    result = PhotoNormalizer(options, encoder=encoder).encode_within_budget(Image.new("RGB", (8, 8)))

    bound = math.ceil(round((initial - floor) / decrement, 6)) + 1
    assert all(later < earlier for earlier, later in zip(encoder.qualities, encoder.qualities[1:]))
    assert encoder.qualities[-1] == round(floor * 100)
    assert len(encoder.qualities) == result.attempts <= bound


def test_real_encoder_keeps_best_effort_result_when_budget_is_tiny(make_image_bytes, caplog) -> None:
    options = NormalizationOptions(byte_budget=100)
    before = REGISTRY.get_sample_value("photo_budget_exceeded_total") or 0.0

    with caplog.at_level(logging.WARNING, logger="molayeri.imgproc.normalize"):
        photo = PhotoNormalizer(options).normalize(make_image_bytes(640, 360), "detailed.jpg")

    assert not photo.within_budget
    assert photo.size_bytes > 100
    assert photo.data[:2] == b"\xff\xd8"
    assert photo.quality == pytest.approx(0.20)
    assert REGISTRY.get_sample_value("photo_budget_exceeded_total") == before + 1
    assert "detailed.jpg" in caplog.text


def test_empty_encoder_output_raises_encode_error() -> None:
    normalizer = PhotoNormalizer(encoder=lambda image, quality: b"")

    with pytest.raises(EncodeError):
        normalizer.encode_within_budget(Image.new("RGB", (16, 9)))


@pytest.mark.parametrize("payload", [b"", b"definitely not an image", b"\x89PNG\r\n\x1a\n" + b"\x00" * 16])
def test_unreadable_input_raises_decode_error(payload: bytes) -> None:
    with pytest.raises(DecodeError):
        PhotoNormalizer().normalize(payload, "broken.jpg")


def test_transparent_png_is_flattened_to_rgb(make_image_bytes) -> None:
    photo = PhotoNormalizer().normalize(make_image_bytes(320, 180, fmt="PNG", mode="RGBA"), "logo.png")

    with Image.open(BytesIO(photo.data)) as decoded:
        assert decoded.mode == "RGB"
        assert decoded.size == (320, 180)


def test_exif_orientation_is_applied_before_cropping(make_image_bytes) -> None:
    exif = Image.Exif()
    exif[0x0112] = 6
    data = make_image_bytes(200, 100, exif=exif.tobytes())

    image = PhotoNormalizer().decode(data)

    assert image.size == (100, 200)
    assert image.mode == "RGB"


def test_custom_ratio_and_width_are_honoured(make_image_bytes) -> None:
    options = NormalizationOptions(aspect_ratio=AspectRatio(4, 3), max_width=400)

    photo = PhotoNormalizer(options).normalize(make_image_bytes(1000, 1000))

    assert (photo.width, photo.height) == (400, 300)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quality_floor": 0.9},
        {"quality_decrement": 0},
        {"initial_quality": 1.5},
        {"byte_budget": 0},
        {"max_width": -1},
    ],
)
def test_invalid_options_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        NormalizationOptions(**kwargs)


def test_options_from_settings() -> None:
    settings = Settings(photo_aspect_ratio="4:3", photo_max_width=800, photo_quality_floor=0.35)

    options = NormalizationOptions.from_settings(settings)

    assert options.aspect_ratio == AspectRatio(4, 3)
    assert options.max_width == 800
    assert options.byte_budget == 160 * 1024
    assert options.floor_percent == 35
