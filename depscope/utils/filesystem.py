"""
File access helpers for depscope.

The ``upgrade`` command is the only writer: it backs the manifest up,
then replaces it atomically, so an interrupted run never leaves a
half-written requirements file. Text is read and written without newline
translation. Every failure is reported as :class:`FileOperationError`
with the operation that failed.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from datetime import datetime
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from depscope.constants import MAX_FILE_SIZE
from depscope.utils.logger import get_logger
from depscope.exceptions import FileOperationError

logger = get_logger("filesystem")

PathLike = Union[str, Path]


@contextmanager
def _reported(message: str, path: Path, operation: str) -> Iterator[None]:
    """Re-raise OS and decoding errors as :class:`FileOperationError`."""
    try:
        yield
    except (OSError, UnicodeDecodeError) as exc:
        raise FileOperationError(
            f"{message}: {exc}",
            file_path=str(path),
            operation=operation,
            original_error=exc,
        ) from exc


def _existing_file(path: Path, operation: str) -> Path:
    problem = None
    if not path.exists():
        problem = "File not found"
    elif not path.is_file():
        problem = "Not a file"
    if problem:
        raise FileOperationError(f"{problem}: {path}", file_path=str(path), operation=operation)
    return path.resolve()


def safe_read_file(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
    encoding: str = "utf-8",
) -> str:
    """Return a file's text exactly as stored, line endings included.

    Raises:
        FileOperationError: Missing, not a regular file, larger than
            ``max_size`` bytes, or unreadable.
    """
    path = _existing_file(Path(file_path), "read")

    size = path.stat().st_size
    if max_size is not None and size > max_size:
        raise FileOperationError(
            f"File too large: {size} bytes (max {max_size})",
            file_path=str(path),
            operation="read",
        )

    with _reported("Failed to read file", path, "read"):
        with open(path, encoding=encoding, newline="") as fh:
            return fh.read()


def safe_write_file(
    file_path: PathLike,
    content: str,
    *,
    create_backup: bool = True,
) -> Optional[Path]:
    """Replace a file's content atomically.

    The text goes to a hidden temporary file in the same directory, which
    is flushed to disk and then renamed over the target. Missing parent
    directories are created.

    Args:
        file_path: Destination.
        content: Text to write, line endings kept verbatim.
        create_backup: Back up an existing destination first.

    Returns:
        The backup path, or ``None`` when no backup was taken.
    """
    target = Path(file_path)
    backup = create_timestamped_backup(target) if create_backup and target.is_file() else None

    tmp_path: Optional[Path] = None
    try:
        with _reported("Atomic write failed", target, "write"):
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as tmp:
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            tmp_path.replace(target)
    finally:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError as exc:
                logger.warning("Could not remove temporary file %s: %s", tmp_path, exc)

    return backup


def create_timestamped_backup(file_path: PathLike) -> Path:
    """Copy a file to ``{stem}.{timestamp}.backup{suffix}`` next to it."""
    path = Path(file_path)
    if not path.is_file():
        raise FileOperationError(
            f"Cannot backup invalid file: {path}",
            file_path=str(path),
            operation="backup",
        )

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup = path.with_name(f"{path.stem}.{stamp}.backup{path.suffix}")
    with _reported("Failed to create backup", path, "backup"):
        shutil.copy2(path, backup)

    logger.debug("Backed up %s to %s", path, backup)
    return backup


def restore_backup(backup_path: PathLike, target_path: PathLike) -> None:
    """Copy a backup back over ``target_path``."""
    backup = _existing_file(Path(backup_path), "restore")
    target = Path(target_path)
    with _reported("Failed to restore backup", target, "restore"):
        shutil.copy2(backup, target)
    logger.debug("Restored %s from %s", target, backup)
