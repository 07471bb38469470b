"""Per-process snapshot files in the shared output directory.

Each process writes exactly one ``<pid>.json`` file, so concurrent processes
never write to the same path and no locking is needed.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".json"


def snapshot_path(temp_dir: Path, pid: int | None = None) -> Path:
    """Return the snapshot file for *pid* (default: this process)."""
    return temp_dir / f"{os.getpid() if pid is None else pid}{SNAPSHOT_SUFFIX}"


def write_snapshot(temp_dir: Path, coverage: Mapping[str, Any], pid: int | None = None) -> Path:
    """Write *coverage* as this process's snapshot, replacing any earlier one.

    Errors propagate: a snapshot that cannot be written means this process's
    coverage is lost, and callers should hear about it.
    """
    path = snapshot_path(temp_dir, pid)
    path.write_text(json.dumps(coverage), encoding="utf-8")
    logger.debug("Wrote coverage snapshot %s (%d files)", path, len(coverage))
    return path


def list_snapshots(temp_dir: Path) -> list[Path]:
    """Return every regular file in *temp_dir*, sorted by name."""
    if not temp_dir.is_dir():
        return []
    return sorted(entry for entry in temp_dir.iterdir() if entry.is_file())


def read_snapshot(path: Path) -> dict[str, Any]:
    """Read one snapshot file.

    A partial or corrupt file (e.g. from a process killed mid-write) reads
    as an empty snapshot.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Treating unreadable coverage snapshot %s as empty: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Treating malformed coverage snapshot %s as empty", path)
        return {}
    return data
