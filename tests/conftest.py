"""Shared fixtures producing synthetic images."""

from __future__ import annotations

from io import BytesIO
from typing import Callable

import pytest
from PIL import Image

from molayeri.imgproc import SelectedFile

ImageFactory = Callable[..., bytes]


def _gradient(width: int, height: int, mode: str = "RGB") -> Image.Image:
    image = Image.linear_gradient("L").resize((width, height))
    if mode == "L":
        return image
    channels = [image, image.transpose(Image.Transpose.FLIP_LEFT_RIGHT), image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)]
    rgb = Image.merge("RGB", channels)
    if mode == "RGB":
        return rgb
    return rgb.convert(mode)


@pytest.fixture
def make_image_bytes() -> ImageFactory:
    """Return a factory encoding a gradient image of the given size."""

    def _factory(width: int = 320, height: int = 240, fmt: str = "JPEG", mode: str = "RGB", **save_kwargs) -> bytes:
        buffer = BytesIO()
        _gradient(width, height, mode).save(buffer, format=fmt, **save_kwargs)
        return buffer.getvalue()

    return _factory


@pytest.fixture
def make_files(make_image_bytes: ImageFactory) -> Callable[[int], list[SelectedFile]]:
    """Return a factory producing ``count`` small JPEG selections."""

    def _factory(count: int) -> list[SelectedFile]:
        data = make_image_bytes(320, 240)
        return [SelectedFile(name=f"photo_{index}.jpg", content_type="image/jpeg", data=data) for index in range(count)]

    return _factory
