"""Tests for sticker export."""

from sticker_forge.services.export import FileSystemExporter, export_filename


def test_export_filename_uses_size_and_id() -> None:
    assert export_filename("3:1", "4K") == "sticker-4k-3_1.png"


def test_export_filename_is_portable() -> None:
    filename = export_filename("batch/7:2 x", "2K")

    assert filename == "sticker-2k-batch_7_2_x.png"
    assert not set(filename) & set('<>:"/\\|?* ')


def test_file_system_exporter_writes_file(tmp_path) -> None:
    exporter = FileSystemExporter(tmp_path / "out")

    exporter.save(b"png-bytes", "sticker-4k-1_0.png")

    assert (tmp_path / "out" / "sticker-4k-1_0.png").read_bytes() == b"png-bytes"
