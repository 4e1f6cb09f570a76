from __future__ import annotations

from pathlib import Path

from PIL import Image

from frame_validator import DiskFrameValidator


def _write_frame(folder: Path, name: str, size: tuple[int, int] = (64, 48)) -> None:
    Image.new("RGB", size, color=(10, 20, 30)).save(folder / name)


def test_missing_folder_has_no_frames(tmp_path: Path) -> None:
    result = DiskFrameValidator().validate(tmp_path / "nope")

    assert result.valid_frame_count == 0
    assert result.dimensions is None


def test_counts_non_empty_jpeg_frames(tmp_path: Path) -> None:
    for index in range(1, 4):
        _write_frame(tmp_path, f"frame_{index:06d}.jpg", size=(320, 200))
    (tmp_path / "frame_000004.jpg").write_bytes(b"")
    (tmp_path / "metrics.json").write_text("{}", encoding="utf-8")
    (tmp_path / "frame_7.jpg").write_bytes(b"junk")

    result = DiskFrameValidator().validate(tmp_path)

    assert result.valid_frame_count == 3
    assert result.dimensions == (320, 200)
    assert result.frame_format == "jpeg"


def test_prefers_jpeg_over_png(tmp_path: Path) -> None:
    _write_frame(tmp_path, "frame_000001.png")
    _write_frame(tmp_path, "frame_000002.png")
    _write_frame(tmp_path, "frame_000001.jpg")

    result = DiskFrameValidator().validate(tmp_path)

    assert result.valid_frame_count == 1
    assert result.frame_format == "jpeg"


def test_png_frames_when_no_jpeg(tmp_path: Path) -> None:
    _write_frame(tmp_path, "frame_000001.png", size=(10, 10))

    result = DiskFrameValidator().validate(tmp_path)

    assert result.valid_frame_count == 1
    assert result.dimensions == (10, 10)
    assert result.frame_format == "png"


def test_estimates_from_hls_segments(tmp_path: Path) -> None:
    for index in range(2):
        (tmp_path / f"segment_{index}.ts").write_bytes(b"\x47" * 188)

    result = DiskFrameValidator().validate(tmp_path)

    assert result.valid_frame_count == 360
    assert result.frame_format == "hls"


def test_unreadable_frame_keeps_count(tmp_path: Path) -> None:
    (tmp_path / "frame_000001.jpg").write_bytes(b"not an image")

    result = DiskFrameValidator().validate(tmp_path)

    assert result.valid_frame_count == 1
    assert result.dimensions is None
