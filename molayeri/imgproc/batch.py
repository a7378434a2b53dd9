"""Photo batches for the onboarding wizard: capacity, cover photo and previews."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from molayeri.access.roles import SessionContext
from molayeri.config.settings import Settings
from molayeri.imgproc.errors import DecodeError, EncodeError
from molayeri.imgproc.normalize import NormalizedPhoto, PhotoNormalizer, ensure_jpeg_support
from molayeri.metrics.prometheus_exporter import photo_failures_total

logger = logging.getLogger(__name__)

UNUSABLE_FILE_MESSAGE = "Bu dosya kullanılamadı."


@dataclass(frozen=True, slots=True)
class SelectedFile:
    """A file picked by the user, before normalisation."""

    name: str
    content_type: str
    data: bytes

    @classmethod
    def from_path(cls, path: Path) -> "SelectedFile":
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content_type=content_type or "application/octet-stream",
            data=path.read_bytes(),
        )

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")


@dataclass(frozen=True, slots=True)
class BatchLimits:
    """How many photos a batch may hold and needs before submission."""

    max_count: int = 6
    min_count: int = 3

    def __post_init__(self) -> None:
        if self.max_count <= 0:
            raise ValueError("max_count must be positive.")
        if not 0 <= self.min_count <= self.max_count:
            raise ValueError("Expected 0 <= min_count <= max_count.")

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchLimits":
        return cls(max_count=settings.photo_batch_max, min_count=settings.photo_batch_min)


@dataclass(slots=True)
class FileFailure:
    """A selected file that did not make it into the batch."""

    name: str
    reason: str
    message: str = UNUSABLE_FILE_MESSAGE


@dataclass(slots=True)
class BatchAddResult:
    """Outcome of adding a selection of files to a batch."""

    added: list[NormalizedPhoto] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    dropped: int = 0
    cancelled: int = 0
    max_count: int = 6

    @property
    def limit_reached(self) -> bool:
        return self.dropped > 0

    @property
    def limit_message(self) -> str | None:
        if not self.limit_reached:
            return None
        return f"En fazla {self.max_count} fotoğraf yükleyebilirsin."


@dataclass(frozen=True, slots=True)
class BatchReadiness:
    """Whether the batch may be submitted, and how many photos are missing."""

    ready: bool
    count: int
    shortfall: int
    message: str | None = None


class PreviewRegistry:
    """Hands out preview handles for photos and keeps them until released."""

    def __init__(self) -> None:
        self._previews: dict[str, bytes] = {}

    def acquire(self, photo: NormalizedPhoto) -> str:
        handle = f"preview://{photo.photo_id}"
        self._previews[handle] = photo.data
        return handle

    def get(self, handle: str) -> bytes:
        return self._previews[handle]

    def release(self, handle: str) -> None:
        self._previews.pop(handle, None)

    def release_all(self) -> None:
        self._previews.clear()

    def __len__(self) -> int:
        return len(self._previews)

    def __contains__(self, handle: object) -> bool:
        return handle in self._previews


class PhotoBatch:
    """
    Ordered photos of one business record.

    Holds at most ``limits.max_count`` photos. Whenever the batch is non-empty
    exactly one photo is the cover; the first photo takes over when the cover is
    removed. Every photo owns a preview handle that is released on removal and
    when the batch is closed.
    """

    def __init__(self, limits: BatchLimits | None = None, previews: PreviewRegistry | None = None) -> None:
        self._limits = limits or BatchLimits()
        self._previews = previews or PreviewRegistry()
        self._photos: list[NormalizedPhoto] = []
        self._handles: dict[str, str] = {}

    def __enter__(self) -> "PhotoBatch":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[NormalizedPhoto]:
        return iter(list(self._photos))

    @property
    def limits(self) -> BatchLimits:
        return self._limits

    @property
    def photos(self) -> tuple[NormalizedPhoto, ...]:
        return tuple(self._photos)

    @property
    def room(self) -> int:
        return max(0, self._limits.max_count - len(self._photos))

    @property
    def cover(self) -> NormalizedPhoto | None:
        return next((photo for photo in self._photos if photo.is_cover), None)

    def preview_handle(self, photo_id: str) -> str:
        return self._handles[photo_id]

    def extend(self, photos: Sequence[NormalizedPhoto]) -> list[NormalizedPhoto]:
        """Append photos up to the remaining room and return those kept."""

        accepted = list(photos[: self.room])
        for photo in accepted:
            photo.is_cover = False
            self._photos.append(photo)
            self._handles[photo.photo_id] = self._previews.acquire(photo)
        self._ensure_cover()
        return accepted

    def remove(self, photo_id: str) -> NormalizedPhoto:
        """Remove a photo and release its preview."""

        photo = self._find(photo_id)
        self._photos.remove(photo)
        self._previews.release(self._handles.pop(photo_id))
        photo.is_cover = False
        self._ensure_cover()
        return photo

    def set_cover(self, photo_id: str) -> None:
        target = self._find(photo_id)
        for photo in self._photos:
            photo.is_cover = photo is target

    def readiness(self) -> BatchReadiness:
        count = len(self._photos)
        shortfall = max(0, self._limits.min_count - count)
        if shortfall:
            return BatchReadiness(
                ready=False,
                count=count,
                shortfall=shortfall,
                message=f"En az {self._limits.min_count} fotoğraf yüklemelisin ({shortfall} eksik).",
            )
        return BatchReadiness(ready=True, count=count, shortfall=0)

    def clear(self) -> None:
        for handle in self._handles.values():
            self._previews.release(handle)
        self._handles.clear()
        self._photos.clear()

    def close(self) -> None:
        self.clear()

    def _find(self, photo_id: str) -> NormalizedPhoto:
        for photo in self._photos:
            if photo.photo_id == photo_id:
                return photo
        raise KeyError(photo_id)

    def _ensure_cover(self) -> None:
        if self._photos and not any(photo.is_cover for photo in self._photos):
            self._photos[0].is_cover = True


class BatchOrchestrator:
    """Normalises picked files one at a time and merges them into a batch."""

    def __init__(self, normalizer: PhotoNormalizer, session: SessionContext) -> None:
        self._normalizer = normalizer
        self._session = session

    async def add_files(
        self,
        batch: PhotoBatch,
        files: Iterable[SelectedFile],
        cancel: asyncio.Event | None = None,
    ) -> BatchAddResult:
        """
        Normalise as many files as the batch has room for and add the results.

        Files past the remaining room are dropped and counted. A file that cannot
        be decoded or encoded is reported and skipped without affecting the rest.
        Setting ``cancel`` stops processing before the next file. Each photo joins
        the batch as soon as it is converted, so an unexpected error keeps the
        photos finished before it.
        """

        ensure_jpeg_support()

        selected = list(files)
        incoming = selected[: batch.room]
        result = BatchAddResult(dropped=len(selected) - len(incoming), max_count=batch.limits.max_count)
        if result.dropped:
            logger.info(
                "User %s selected %s file(s) with room for %s; dropping %s",
                self._session.user_id,
                len(selected),
                len(incoming),
                result.dropped,
            )

        for index, file in enumerate(incoming):
            if cancel is not None and cancel.is_set():
                result.cancelled = len(incoming) - index
                logger.info(
                    "Photo batch for user %s cancelled with %s file(s) left",
                    self._session.user_id,
                    result.cancelled,
                )
                break

            if not file.is_image:
                self._record_failure(result, file, "content_type")
                continue

            try:
                photo = await asyncio.to_thread(self._normalizer.normalize, file.data, file.name)
            except DecodeError as exc:
                self._record_failure(result, file, "decode", exc)
                continue
            except EncodeError as exc:
                self._record_failure(result, file, "encode", exc)
                continue
            result.added.extend(batch.extend([photo]))

        return result

    def _record_failure(
        self,
        result: BatchAddResult,
        file: SelectedFile,
        reason: str,
        exc: Exception | None = None,
    ) -> None:
        photo_failures_total.labels(reason=reason).inc()
        logger.warning(
            "Skipping %s (%s) for user %s: %s",
            file.name,
            file.content_type,
            self._session.user_id,
            exc or reason,
        )
        result.failures.append(FileFailure(name=file.name, reason=reason))
