"""Normalise a set of photos into a business photo batch."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from molayeri.access.roles import SessionContext
from molayeri.config.settings import get_settings
from molayeri.imgproc import (
    BatchAddResult,
    BatchLimits,
    BatchNotReadyError,
    BatchOrchestrator,
    NormalizationOptions,
    PhotoBatch,
    PhotoNormalizer,
    SelectedFile,
)
from molayeri.imgproc.batch import UNUSABLE_FILE_MESSAGE
from molayeri.monitoring.logging import configure_logging
from molayeri.storage.photos import LocalPhotoStorage

logger = logging.getLogger(__name__)


def _format_result(result: BatchAddResult) -> list[str]:
    lines = []
    for photo in result.added:
        status = "✅" if photo.within_budget else "⚠️"
        cover = " (cover)" if photo.is_cover else ""
        lines.append(
            f"{status} {photo.source_name}: {photo.width}x{photo.height}, "
            f"{photo.size_bytes / 1024:.1f} KB at quality {photo.quality:.2f}{cover}"
        )
    for failure in result.failures:
        lines.append(f"❌ {failure.name}: {failure.message} [{failure.reason}]")
    if result.limit_message:
        lines.append(f"❌ {result.limit_message} ({result.dropped} file(s) ignored)")
    return lines


def _read_inputs(inputs: Sequence[Path]) -> tuple[list[SelectedFile], list[str]]:
    files = []
    unreadable = []
    for path in inputs:
        try:
            files.append(SelectedFile.from_path(path))
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            unreadable.append(f"❌ {path.name}: {UNUSABLE_FILE_MESSAGE} [read]")
    return files, unreadable


async def run(
    inputs: Sequence[Path],
    output: Path | None = None,
    owner: str = "local",
    dry_run: bool = False,
) -> int:
    settings = get_settings()
    normalizer = PhotoNormalizer(NormalizationOptions.from_settings(settings))
    orchestrator = BatchOrchestrator(normalizer, SessionContext(user_id=owner))
    root = output if output is not None else Path(settings.media_root)

    with PhotoBatch(BatchLimits.from_settings(settings)) as batch:
        files, unreadable = _read_inputs(inputs)
        for line in unreadable:
            print(line)
        result = await orchestrator.add_files(batch, files)
        for line in _format_result(result):
            print(line)

        readiness = batch.readiness()
        if not readiness.ready:
            print(readiness.message)
        if dry_run:
            return 0 if readiness.ready else 1

        storage = LocalPhotoStorage(root)
        try:
            manifest = await storage.save_batch(owner, batch)
        except BatchNotReadyError as exc:
            print(f"Not saved: {exc}")
            return 1
        print(f"Saved {len(manifest.photos)} photo(s) to {root / owner}")
        return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Crop photos to the listing aspect ratio and compress them under the byte budget."
    )
    parser.add_argument("inputs", nargs="+", type=Path, help="Image files, in display order")
    parser.add_argument("-o", "--output", type=Path, help="Storage root to save the batch into (default: MEDIA_ROOT)")
    parser.add_argument("--dry-run", action="store_true", help="Only report the results, do not save")
    parser.add_argument("--owner", default="local", help="Owner id used as the storage folder (default: local)")
    args = parser.parse_args()

    configure_logging()
    raise SystemExit(asyncio.run(run(args.inputs, args.output, args.owner, args.dry_run)))


if __name__ == "__main__":
    main()
