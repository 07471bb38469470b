"""Source map storage and coverage remapping.

Maps reach the :class:`SourceMapCache` along two routes:

* eagerly, keyed by relative path, when a file is instrumented with the disk
  cache disabled and the map is discovered in the same process;
* lazily, keyed by content hash, when the disk cache is enabled.  The map was
  written next to the cached module as ``<hash>.map``, possibly by another
  process, and :class:`HashedMapIndex` reads it back at report time.
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import sourcemap

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping

logger = logging.getLogger(__name__)

MAP_EXT = ".map"

_DECODE_ERRORS = (ValueError, KeyError, TypeError, IndexError)


@dataclass(slots=True)
class LoadedSourceMap:
    """A parsed source map alongside its raw JSON document."""

    raw: dict[str, Any]
    index: Any
    """``sourcemap.SourceMapIndex`` used for position lookups."""

    @property
    def sources(self) -> list[str]:
        root = self.raw.get("sourceRoot") or ""
        return [posixpath.join(root, src) if root else src for src in self.raw.get("sources", [])]

    def original_position(self, position: Mapping[str, Any]) -> dict[str, int] | None:
        """Map a generated ``{"line", "column"}`` to original coordinates.

        Lines are 1-based and columns 0-based on both sides.  Returns ``None``
        when the position has no mapping.
        """
        line = position.get("line")
        column = position.get("column") or 0
        if not isinstance(line, int) or line < 1 or not isinstance(column, int):
            return None
        try:
            token = self.index.lookup(line - 1, max(column, 0))
        except (IndexError, KeyError):
            return None
        if token is None or token.src is None:
            return None
        return {"line": token.src_line + 1, "column": token.src_col or 0}


def parse_source_map(
    source_map: str | bytes | Mapping[str, Any] | LoadedSourceMap,
) -> LoadedSourceMap | None:
    """Parse *source_map* from JSON text or a decoded dict.

    Invalid maps are logged and yield ``None``.
    """
    if isinstance(source_map, LoadedSourceMap):
        return source_map
    try:
        if isinstance(source_map, bytes):
            source_map = source_map.decode("utf-8")
        text = source_map if isinstance(source_map, str) else json.dumps(source_map)
        raw = json.loads(text)
        if not isinstance(raw, dict):
            raise ValueError("source map must be a JSON object")
        index = sourcemap.loads(text)
    except (*_DECODE_ERRORS, UnicodeDecodeError) as exc:
        logger.warning("Ignoring invalid source map: %s", exc)
        return None
    return LoadedSourceMap(raw=raw, index=index)


class SourceMapCache:
    """Path-keyed source maps, applied to coverage models in place.

    Args:
        cwd: Project root; relative coverage keys are resolved against it
            when a single-source map moves a record to its original file.
    """

    def __init__(self, cwd: str | Path) -> None:
        self.cwd = Path(cwd)
        self._maps: dict[str, LoadedSourceMap] = {}

    def add_map(
        self, rel_file: str, source_map: str | Mapping[str, Any] | LoadedSourceMap
    ) -> None:
        """Register *source_map* for coverage key *rel_file*."""
        loaded = parse_source_map(source_map)
        if loaded is not None:
            self._maps[rel_file] = loaded

    def has_map(self, rel_file: str) -> bool:
        return rel_file in self._maps

    def __len__(self) -> int:
        return len(self._maps)

    def apply_source_maps(self, coverage: MutableMapping[str, Any]) -> None:
        """Rewrite every mapped record of *coverage* to original coordinates."""
        for key in list(coverage):
            loaded = self._maps.get(key)
            record = coverage.get(key)
            if loaded is None or not isinstance(record, dict):
                continue
            _rewrite_statements(record, loaded)
            _rewrite_functions(record, loaded)
            _rewrite_branches(record, loaded)
            self._rewrite_path(coverage, key, record, loaded)

    def _rewrite_path(
        self,
        coverage: MutableMapping[str, Any],
        key: str,
        record: dict[str, Any],
        loaded: LoadedSourceMap,
    ) -> None:
        # Only single-source maps identify one original file unambiguously.
        sources = loaded.sources
        if len(sources) != 1:
            return
        generated = self.cwd / key
        original = os.path.normpath(generated.parent / sources[0])
        new_key = Path(os.path.relpath(original, self.cwd)).as_posix()
        if new_key == key:
            return
        if new_key in coverage:
            logger.debug("Not moving %s onto existing coverage key %s", key, new_key)
            return
        del coverage[key]
        record["path"] = new_key
        coverage[new_key] = record


def _rewrite_loc(loc: Any, loaded: LoadedSourceMap) -> None:
    if not isinstance(loc, dict):
        return
    start = loaded.original_position(loc.get("start") or {})
    end = loaded.original_position(loc.get("end") or {})
    if start is not None and end is not None:
        loc["start"] = start
        loc["end"] = end


def _rewrite_line(entry: dict[str, Any], loaded: LoadedSourceMap) -> None:
    line = entry.get("line")
    if isinstance(line, int):
        mapped = loaded.original_position({"line": line, "column": 0})
        if mapped is not None:
            entry["line"] = mapped["line"]


def _rewrite_statements(record: dict[str, Any], loaded: LoadedSourceMap) -> None:
    for loc in (record.get("statementMap") or {}).values():
        _rewrite_loc(loc, loaded)


def _rewrite_functions(record: dict[str, Any], loaded: LoadedSourceMap) -> None:
    for fn in (record.get("fnMap") or {}).values():
        if isinstance(fn, dict):
            _rewrite_line(fn, loaded)
            _rewrite_loc(fn.get("loc"), loaded)


def _rewrite_branches(record: dict[str, Any], loaded: LoadedSourceMap) -> None:
    for branch in (record.get("branchMap") or {}).values():
        if not isinstance(branch, dict):
            continue
        _rewrite_line(branch, loaded)
        _rewrite_loc(branch.get("loc"), loaded)
        for loc in branch.get("locations") or []:
            _rewrite_loc(loc, loaded)


class HashedMapIndex:
    """Memoized lookup of ``<cache_dir>/<hash>.map`` files.

    Failed lookups are remembered as ``None`` so each hash touches the disk
    at most once.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)
        self._loaded: dict[str, LoadedSourceMap | None] = {}

    def map_path(self, content_hash: str) -> Path:
        return self.cache_dir / f"{content_hash}{MAP_EXT}"

    def get(self, content_hash: str) -> LoadedSourceMap | None:
        if content_hash not in self._loaded:
            self._loaded[content_hash] = self._load(content_hash)
        return self._loaded[content_hash]

    def _load(self, content_hash: str) -> LoadedSourceMap | None:
        path = self.map_path(content_hash)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read source map %s: %s", path, exc)
            return None
        return parse_source_map(text)

    def __contains__(self, content_hash: object) -> bool:
        return content_hash in self._loaded
