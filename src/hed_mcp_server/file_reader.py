"""Reading caller-supplied files from the local filesystem.

Only absolute paths are accepted. Each failure mode raises a dedicated
:class:`FileReaderError` subclass whose ``detailed_code`` is what the tool
handlers put into the ``FILE_READ_ERROR`` issue they return.
"""

from __future__ import annotations

import asyncio
from pathlib import Path


class FileReaderError(Exception):
    """Base class for file acquisition failures."""

    detailed_code = "fileReadError"

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.message = message
        self.path = path


class PathNotAbsoluteError(FileReaderError):
    detailed_code = "pathNotAbsolute"


class HedFileNotFoundError(FileReaderError, FileNotFoundError):
    detailed_code = "fileNotFound"


class FileReadError(FileReaderError):
    detailed_code = "fileReadError"


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


async def read_file_from_path(file_path: str) -> str:
    """Read a UTF-8 text file given its absolute path.

    Args:
        file_path: Absolute path to the file.

    Returns:
        The file contents.

    Raises:
        PathNotAbsoluteError: If ``file_path`` is relative.
        HedFileNotFoundError: If nothing exists at ``file_path``.
        FileReadError: For any other I/O or decoding failure.
    """
    path = Path(file_path)
    if not path.is_absolute():
        raise PathNotAbsoluteError(f"File path must be absolute: {file_path}.", file_path)

    try:
        return await asyncio.to_thread(_read_text, path)
    except FileNotFoundError:
        raise HedFileNotFoundError(f"File not found at path: {file_path}", file_path) from None
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(f"Failed to read file at path {file_path}: {e}", file_path) from e
