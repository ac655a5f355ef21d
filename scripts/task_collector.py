#!/usr/bin/env python3
"""
Task Collector Module

Turns user-supplied paths into scan tasks:

- Source files with a recognised extension (``.lua`` by default) become one task
- Zip archives are read in memory; every non-directory entry with a
  recognised extension becomes its own task named ``archiveName/entryPath``
- Directories are walked recursively in sorted order
- Everything else is skipped

A file or archive that cannot be read raises ``InputReadError``; this is the
only failure allowed to abort a whole batch.
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from exceptions import InputReadError
from models import ScanTask

__all__ = [
    "DEFAULT_SOURCE_EXTENSIONS",
    "DEFAULT_ARCHIVE_EXTENSIONS",
    "collect_tasks",
    "tasks_from_archive",
    "tasks_from_archive_bytes",
]

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_EXTENSIONS = (".lua",)
DEFAULT_ARCHIVE_EXTENSIONS = (".zip",)


def _normalize_extensions(extensions: Union[str, Sequence[str], None], default: Sequence[str]) -> tuple:
    if extensions is None:
        return tuple(default)
    if isinstance(extensions, str):
        extensions = extensions.split(",")
    normalized = []
    for ext in extensions:
        ext = ext.strip().lower()
        if ext:
            normalized.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(normalized)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def tasks_from_archive_bytes(
    archive_name: str,
    data: bytes,
    source_extensions: Sequence[str] = DEFAULT_SOURCE_EXTENSIONS,
) -> list[ScanTask]:
    """Extract matching entries from an in-memory zip archive

    Args:
        archive_name: Name used as the task name prefix
        data: Raw archive bytes
        source_extensions: Lower-case extensions to keep

    Returns:
        One ScanTask per matching entry, in archive order

    Raises:
        InputReadError: if the archive is corrupt
    """
    tasks = []
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in zf.infolist():
                if info.is_dir() or not info.filename.lower().endswith(tuple(source_extensions)):
                    continue
                tasks.append(ScanTask(name=f"{archive_name}/{info.filename}", content=_decode(zf.read(info))))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
        raise InputReadError(f"Cannot read archive {archive_name}: {e}") from e

    logger.debug("Archive %s: %d matching entr%s", archive_name, len(tasks), "y" if len(tasks) == 1 else "ies")
    return tasks


def tasks_from_archive(path: Path, source_extensions: Sequence[str] = DEFAULT_SOURCE_EXTENSIONS) -> list[ScanTask]:
    """Matching entries of the zip archive at *path*."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InputReadError(f"Cannot read archive {path}: {e}") from e
    return tasks_from_archive_bytes(path.name, data, source_extensions)


def collect_tasks(
    paths: Iterable[Union[str, Path]],
    source_extensions: Union[str, Sequence[str], None] = None,
    archive_extensions: Union[str, Sequence[str], None] = None,
    max_file_size: Optional[int] = None,
) -> list[ScanTask]:
    """Collect scan tasks from files, archives and directories

    Args:
        paths: Files or directories, in the order they should be scanned
        source_extensions: Source extensions (list or comma-separated string)
        archive_extensions: Archive extensions (list or comma-separated string)
        max_file_size: Skip source files larger than this many bytes

    Returns:
        Scan tasks in input order

    Raises:
        InputReadError: if a file or archive cannot be read
    """
    sources = _normalize_extensions(source_extensions, DEFAULT_SOURCE_EXTENSIONS)
    archives = _normalize_extensions(archive_extensions, DEFAULT_ARCHIVE_EXTENSIONS)

    tasks: list[ScanTask] = []
    for raw_path in paths:
        path = Path(raw_path)
        if path.is_dir():
            candidates = sorted(p for p in path.rglob("*") if p.is_file())
        elif path.exists():
            candidates = [path]
        else:
            raise InputReadError(f"No such file or directory: {path}")

        for candidate in candidates:
            lower = candidate.name.lower()
            if lower.endswith(sources):
                try:
                    data = candidate.read_bytes()
                except OSError as e:
                    raise InputReadError(f"Cannot read {candidate}: {e}") from e
                if max_file_size and len(data) > max_file_size:
                    logger.warning("Skipping %s: %d bytes exceeds max_file_size %d", candidate, len(data), max_file_size)
                    continue
                tasks.append(ScanTask(name=candidate.name, content=_decode(data)))
            elif lower.endswith(archives):
                tasks.extend(tasks_from_archive(candidate, sources))
            else:
                logger.debug("Skipping unsupported file %s", candidate)

    logger.info("Collected %d script(s) for scanning", len(tasks))
    return tasks
