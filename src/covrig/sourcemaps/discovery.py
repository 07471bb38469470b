"""Locate source maps referenced from generated Python source.

Generated modules point at their map with a trailing comment, either inline::

    # sourceMappingURL=data:application/json;charset=utf-8;base64,eyJ2ZXJza...

or as a file next to the module::

    # sourceMappingURL=module.py.map
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)

_MAP_COMMENT_RE = re.compile(
    r"^[ \t]*#[ \t]*[@#]?[ \t]*sourceMappingURL=(\S+)[ \t]*$", re.MULTILINE
)
_DATA_URI_PREFIX = "data:"


def _last_reference(code: str) -> str | None:
    matches = _MAP_COMMENT_RE.findall(code)
    return matches[-1] if matches else None


def _decode_data_uri(uri: str) -> str | None:
    header, sep, payload = uri[len(_DATA_URI_PREFIX) :].partition(",")
    if not sep:
        return None
    media = header.split(";")
    if not media[0].endswith("json"):
        return None
    if "base64" in media[1:]:
        try:
            return base64.b64decode(payload, validate=False).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            logger.debug("Undecodable inline source map: %s", exc)
            return None
    return unquote(payload)


def from_source(code: str) -> str | None:
    """Return the inline source map embedded in *code* as JSON text."""
    reference = _last_reference(code)
    if reference is None or not reference.startswith(_DATA_URI_PREFIX):
        return None
    return _decode_data_uri(reference)


def from_map_file_source(code: str, directory: str | Path) -> str | None:
    """Return the JSON text of a map file referenced from *code*.

    The reference is resolved against *directory* (the generated file's
    directory).  A missing or unreadable map yields ``None``.
    """
    reference = _last_reference(code)
    if reference is None or reference.startswith(_DATA_URI_PREFIX):
        return None
    map_path = Path(directory) / unquote(reference)
    try:
        return map_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Cannot read source map %s: %s", map_path, exc)
        return None


def discover(code: str, filename: str | Path) -> str | None:
    """Return the source map for *code* from either location, inline first."""
    return from_source(code) or from_map_file_source(code, Path(filename).parent)
