"""Helpers shared by the covrig tests."""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

# Generated line 1 maps to original line 3, generated line 2 to line 4.
SHIFT_TWO_MAPPINGS = "AAEA;AACA"


def make_source_map(sources: list[str], mappings: str = SHIFT_TWO_MAPPINGS) -> dict[str, Any]:
    """Build a version 3 source map document."""
    return {"version": 3, "sources": sources, "names": [], "mappings": mappings}


def inline_map_comment(source_map: dict[str, Any]) -> str:
    """Return a ``# sourceMappingURL=`` line embedding *source_map* as base64."""
    payload = base64.b64encode(json.dumps(source_map).encode("utf-8")).decode("ascii")
    return f"# sourceMappingURL=data:application/json;charset=utf-8;base64,{payload}\n"


def write_file(root: Path, rel: str, content: str) -> Path:
    """Write *content* to a file under *root*."""
    f = root / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(content, encoding="utf-8")
    return f


def file_record(
    path: str,
    s: dict[str, int] | None = None,
    f: dict[str, int] | None = None,
    b: dict[str, list[int]] | None = None,
) -> dict[str, Any]:
    """Build a minimal Istanbul-style record with one-line locations."""
    s = s or {}
    f = f or {}
    b = b or {}

    def loc(line: int) -> dict[str, dict[str, int]]:
        return {"start": {"line": line, "column": 0}, "end": {"line": line, "column": 10}}

    return {
        "path": path,
        "statementMap": {key: loc(int(key) + 1) for key in s},
        "fnMap": {
            key: {"name": f"fn{key}", "line": int(key) + 1, "loc": loc(int(key) + 1)} for key in f
        },
        "branchMap": {
            key: {
                "line": int(key) + 1,
                "type": "if",
                "loc": loc(int(key) + 1),
                "locations": [loc(int(key) + 1) for _ in counts],
            }
            for key, counts in b.items()
        },
        "s": dict(s),
        "f": dict(f),
        "b": {key: list(counts) for key, counts in b.items()},
    }
