"""Local object storage for submitted photo batches."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from molayeri.imgproc.batch import PhotoBatch
from molayeri.imgproc.errors import BatchNotReadyError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass(slots=True)
class StoredPhoto:
    """Metadata of one persisted photo."""

    photo_id: str
    filename: str
    size_bytes: int
    width: int
    height: int
    quality: float
    within_budget: bool
    is_cover: bool = False
    content_type: str = "image/jpeg"


@dataclass(slots=True)
class PhotoManifest:
    """Ordered photos stored for one owner."""

    owner_id: str
    photos: List[StoredPhoto] = field(default_factory=list)
    updated_at: Optional[str] = None

    @property
    def cover(self) -> Optional[StoredPhoto]:
        return next((photo for photo in self.photos if photo.is_cover), None)

    def touch(self) -> None:
        """Update the modification timestamp."""

        self.updated_at = datetime.now(timezone.utc).isoformat()


class LocalPhotoStorage:
    """Writes photos as ``<root>/<owner_id>/<photo_id>.jpg`` next to a JSON manifest."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}

    def _owner_dir(self, owner_id: str) -> Path:
        """Return the owner's folder, refusing ids that would leave the storage root."""

        if (
            not owner_id
            or owner_id in (".", "..")
            or owner_id.startswith(".")
            or any(char in owner_id for char in ("/", "\\", "\x00"))
        ):
            raise ValueError(f"Invalid owner id: {owner_id!r}")
        path = self._root / owner_id
        if path.resolve().parent != self._root.resolve():
            raise ValueError(f"Invalid owner id: {owner_id!r}")
        return path

    def _manifest_path(self, owner_id: str) -> Path:
        return self._owner_dir(owner_id) / MANIFEST_NAME

    def _lock_for(self, owner_id: str) -> asyncio.Lock:
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        return self._locks[owner_id]

    def photo_path(self, owner_id: str, stored: StoredPhoto) -> Path:
        return self._owner_dir(owner_id) / stored.filename

    async def save_batch(self, owner_id: str, batch: PhotoBatch) -> PhotoManifest:
        """Replace the owner's stored photos with the contents of a ready batch."""

        readiness = batch.readiness()
        if not readiness.ready:
            raise BatchNotReadyError(readiness.shortfall)

        owner_dir = self._owner_dir(owner_id)
        manifest = PhotoManifest(owner_id=owner_id)
        async with self._lock_for(owner_id):
            # The stored batch is replaced only after every write succeeded.
            staging_dir = self._root / f".{owner_id}.staging-{uuid.uuid4().hex}"
            try:
                await self._write_batch(staging_dir, manifest, batch)
                await asyncio.to_thread(self._swap_dir, staging_dir, owner_dir)
            finally:
                await asyncio.to_thread(self._delete_dir, staging_dir)

        logger.info("Stored %s photo(s) for owner %s", len(manifest.photos), owner_id)
        return manifest

    async def _write_batch(self, target_dir: Path, manifest: PhotoManifest, batch: PhotoBatch) -> None:
        for photo in batch:
            stored = StoredPhoto(
                photo_id=photo.photo_id,
                filename=f"{photo.photo_id}.jpg",
                size_bytes=photo.size_bytes,
                width=photo.width,
                height=photo.height,
                quality=photo.quality,
                within_budget=photo.within_budget,
                is_cover=photo.is_cover,
                content_type=photo.content_type,
            )
            await asyncio.to_thread(self._write_bytes, target_dir / stored.filename, photo.data)
            manifest.photos.append(stored)
        await self._write_manifest(manifest, target_dir / MANIFEST_NAME)

    async def load_manifest(self, owner_id: str) -> PhotoManifest | None:
        """Return the owner's manifest, or None when nothing is stored."""

        async with self._lock_for(owner_id):
            return await self._read_manifest(owner_id)

    async def delete_photo(self, owner_id: str, photo_id: str) -> PhotoManifest:
        """Delete one stored photo; the first remaining photo becomes cover if needed."""

        async with self._lock_for(owner_id):
            manifest = await self._read_manifest(owner_id)
            if manifest is None:
                raise KeyError(photo_id)
            stored = next((photo for photo in manifest.photos if photo.photo_id == photo_id), None)
            if stored is None:
                raise KeyError(photo_id)

            manifest.photos.remove(stored)
            await asyncio.to_thread(self._delete_file, self.photo_path(owner_id, stored))
            if manifest.photos and manifest.cover is None:
                manifest.photos[0].is_cover = True
            await self._write_manifest(manifest)

        logger.info("Deleted photo %s of owner %s", photo_id, owner_id)
        return manifest

    async def delete_owner(self, owner_id: str) -> None:
        """Remove every stored photo of the owner."""

        async with self._lock_for(owner_id):
            await asyncio.to_thread(self._delete_dir, self._owner_dir(owner_id))

    async def _read_manifest(self, owner_id: str) -> PhotoManifest | None:
        path = self._manifest_path(owner_id)
        if not path.exists():
            return None
        data = await asyncio.to_thread(path.read_text, encoding="utf-8")
        payload = json.loads(data)
        payload["photos"] = [StoredPhoto(**item) for item in payload.get("photos", [])]
        return PhotoManifest(**payload)

    async def _write_manifest(self, manifest: PhotoManifest, path: Path | None = None) -> None:
        manifest.touch()
        body = json.dumps(asdict(manifest), ensure_ascii=False, indent=2)
        target = path or self._manifest_path(manifest.owner_id)
        await asyncio.to_thread(self._write_text, target, body)

    def _swap_dir(self, staging_dir: Path, owner_dir: Path) -> None:
        """Move the staged folder into place, then drop the previous one."""

        retired_dir = None
        if owner_dir.exists():
            retired_dir = staging_dir.with_name(f"{staging_dir.name}.old")
            os.replace(owner_dir, retired_dir)
        try:
            os.replace(staging_dir, owner_dir)
        except OSError:
            if retired_dir is not None:
                os.replace(retired_dir, owner_dir)
            raise
        if retired_dir is not None:
            self._delete_dir(retired_dir)

    @staticmethod
    def _write_bytes(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _write_text(path: Path, body: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")

    @staticmethod
    def _delete_file(path: Path) -> None:
        if path.exists():
            path.unlink()

    @staticmethod
    def _delete_dir(path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)
