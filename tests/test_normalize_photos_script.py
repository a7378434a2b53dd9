"""Tests for the command-line batch normaliser."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from molayeri.config.settings import get_settings
from scripts.normalize_photos import run


@pytest.fixture(autouse=True)
def _media_root(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.chdir(tmp_path)
    media_root = tmp_path / "media"
    monkeypatch.setenv("MEDIA_ROOT", str(media_root))
    get_settings.cache_clear()
    yield media_root
    get_settings.cache_clear()


@pytest.fixture
def photo_paths(tmp_path: Path, make_image_bytes):
    def _factory(count: int) -> list[Path]:
        paths = []
        for index in range(count):
            path = tmp_path / f"photo_{index}.jpg"
            path.write_bytes(make_image_bytes(320, 240))
            paths.append(path)
        return paths

    return _factory


@pytest.mark.asyncio
async def test_batch_is_saved_under_media_root_by_default(_media_root: Path, photo_paths, capsys) -> None:
    exit_code = await run(photo_paths(3), owner="biz-7")

    assert exit_code == 0
    manifest = json.loads((_media_root / "biz-7" / "manifest.json").read_text(encoding="utf-8"))
    assert len(manifest["photos"]) == 3
    assert f"Saved 3 photo(s) to {_media_root / 'biz-7'}" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_output_option_overrides_media_root(_media_root: Path, tmp_path: Path, photo_paths) -> None:
    exit_code = await run(photo_paths(3), tmp_path / "elsewhere", owner="biz-7")

    assert exit_code == 0
    assert (tmp_path / "elsewhere" / "biz-7" / "manifest.json").exists()
    assert not _media_root.exists()


@pytest.mark.asyncio
async def test_dry_run_saves_nothing(_media_root: Path, photo_paths, capsys) -> None:
    exit_code = await run(photo_paths(3), owner="biz-7", dry_run=True)

    assert exit_code == 0
    assert not _media_root.exists()
    assert "Saved" not in capsys.readouterr().out


@pytest.mark.asyncio
async def test_missing_input_is_reported_and_others_still_run(tmp_path: Path, photo_paths, capsys) -> None:
    paths = photo_paths(3)
    paths.insert(1, tmp_path / "gone.jpg")

    exit_code = await run(paths, owner="biz-7", dry_run=True)

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "❌ gone.jpg: Bu dosya kullanılamadı. [read]" in out
    assert out.count("✅") + out.count("⚠️") == 3


@pytest.mark.asyncio
async def test_not_ready_batch_is_not_saved(_media_root: Path, photo_paths, capsys) -> None:
    exit_code = await run(photo_paths(2), owner="biz-7")

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "En az 3 fotoğraf yüklemelisin (1 eksik)." in out
    assert "Not saved" in out
    assert not (_media_root / "biz-7").exists()
