"""Tests for reading caller-supplied files."""

import pytest

from hed_mcp_server.file_reader import (
    FileReadError,
    FileReaderError,
    HedFileNotFoundError,
    PathNotAbsoluteError,
    read_file_from_path,
)


@pytest.mark.asyncio
async def test_reads_utf8_text(tmp_path):
    path = tmp_path / "events.tsv"
    path.write_text("onset\tHED\n1.0\tRéd\n", encoding="utf-8")

    assert await read_file_from_path(str(path)) == "onset\tHED\n1.0\tRéd\n"


@pytest.mark.asyncio
async def test_relative_path_rejected():
    with pytest.raises(PathNotAbsoluteError) as exc_info:
        await read_file_from_path("data/events.tsv")

    assert exc_info.value.detailed_code == "pathNotAbsolute"
    assert "must be absolute" in exc_info.value.message


@pytest.mark.asyncio
async def test_missing_file(tmp_path):
    missing = tmp_path / "missing.json"

    with pytest.raises(HedFileNotFoundError) as exc_info:
        await read_file_from_path(str(missing))

    assert isinstance(exc_info.value, FileNotFoundError)
    assert isinstance(exc_info.value, FileReaderError)
    assert exc_info.value.detailed_code == "fileNotFound"
    assert exc_info.value.message == f"File not found at path: {missing}"


@pytest.mark.asyncio
async def test_directory_is_a_read_error(tmp_path):
    with pytest.raises(FileReadError) as exc_info:
        await read_file_from_path(str(tmp_path))

    assert exc_info.value.detailed_code == "fileReadError"
    assert exc_info.value.path == str(tmp_path)


@pytest.mark.asyncio
async def test_invalid_utf8_is_a_read_error(tmp_path):
    path = tmp_path / "binary.tsv"
    path.write_bytes(b"\xff\xfe\x00bad")

    with pytest.raises(FileReadError, match="Failed to read file"):
        await read_file_from_path(str(path))
