"""Per-process coverage counters."""

from __future__ import annotations

import copy
from typing import Any

REGISTER_NAME = "__covrig_register__"
"""Module-global name under which instrumented code finds :meth:`register`."""

COUNTERS_NAME = "__covrig_cov__"
"""Module-global name of the live per-file record inside instrumented code."""

FileRecordData = dict[str, Any]


class CoverageAccumulator:
    """Live coverage records for every instrumented file loaded in this process.

    Instrumented modules call :meth:`register` once when they start executing
    and then bump counters in the returned record directly.  Counters only
    grow until the process flushes.
    """

    def __init__(self) -> None:
        self._files: dict[str, FileRecordData] = {}

    def register(self, rel_file: str, record: FileRecordData) -> FileRecordData:
        """Return the live record for *rel_file*, storing *record* if it is new.

        A module executed twice (e.g. reloaded) keeps counting into the
        record created by its first execution.
        """
        existing = self._files.get(rel_file)
        if existing is not None:
            return existing
        self._files[rel_file] = record
        return record

    def get(self, rel_file: str) -> FileRecordData | None:
        return self._files.get(rel_file)

    def snapshot(self) -> dict[str, FileRecordData]:
        """Return a deep copy that can be annotated or remapped freely."""
        return copy.deepcopy(self._files)

    def clear(self) -> None:
        self._files.clear()

    def reset(self) -> None:
        """Zero every counter in place.

        Loaded modules keep counting into the same records, so a forked
        child reports only what it executes itself.
        """
        for record in self._files.values():
            for key in ("s", "f"):
                counts = record.get(key, {})
                for counter in counts:
                    counts[counter] = 0
            for hits in record.get("b", {}).values():
                hits[:] = [0] * len(hits)

    def __contains__(self, rel_file: object) -> bool:
        return rel_file in self._files

    def __len__(self) -> int:
        return len(self._files)

    def __bool__(self) -> bool:
        return bool(self._files)
