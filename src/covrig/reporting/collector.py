"""Merge per-process coverage models into one."""

from __future__ import annotations

import copy
from typing import Any

from covrig.reporting.model import CoverageReport, FileCoverage, build_report, parse_file_record

_COUNTER_KEYS = ("s", "f")


class Collector:
    """Accumulate coverage models, summing hit counts per file.

    The same file reported by several processes keeps the location maps of
    the first report and the sum of all counters.
    """

    def __init__(self) -> None:
        self._files: dict[str, dict[str, Any]] = {}

    def add(self, coverage: dict[str, Any]) -> None:
        for path, record in coverage.items():
            if not isinstance(record, dict):
                continue
            existing = self._files.get(path)
            if existing is None:
                merged = copy.deepcopy(record)
                merged.pop("contentHash", None)
                self._files[path] = merged
            else:
                _merge_record(existing, record)

    def files(self) -> list[str]:
        return sorted(self._files)

    def file_coverage(self, path: str) -> dict[str, Any]:
        return self._files[path]

    def final_coverage(self) -> dict[str, dict[str, Any]]:
        return {path: self._files[path] for path in self.files()}

    def summary(self) -> CoverageReport:
        return build_report(self._files)

    def file_summary(self, path: str) -> FileCoverage:
        return parse_file_record(path, self._files[path])


def _merge_record(into: dict[str, Any], other: dict[str, Any]) -> None:
    for key in _COUNTER_KEYS:
        counters = into.setdefault(key, {})
        for counter_id, count in (other.get(key) or {}).items():
            counters[counter_id] = counters.get(counter_id, 0) + count

    branches = into.setdefault("b", {})
    for branch_id, counts in (other.get("b") or {}).items():
        current = branches.get(branch_id)
        if current is None:
            branches[branch_id] = list(counts)
            continue
        if len(current) < len(counts):
            current.extend([0] * (len(counts) - len(current)))
        for i, count in enumerate(counts):
            current[i] += count

    for map_key in ("statementMap", "fnMap", "branchMap"):
        target = into.setdefault(map_key, {})
        for item_id, item in (other.get(map_key) or {}).items():
            target.setdefault(item_id, copy.deepcopy(item))
