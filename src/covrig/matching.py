"""Include/exclude classification of source files.

Patterns use globstar semantics: ``**`` spans any number of whole path
segments, ``*``, ``?`` and ``[...]`` stay inside one segment, and ``{a,b}``
alternatives are expanded before matching.  A pattern that names a directory
also covers everything below it, the way ``.gitignore`` entries do.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable, Sequence
from functools import lru_cache

MANDATORY_EXCLUDE: tuple[str, ...] = ("**/site-packages/**", "../**")
"""Installed dependencies and anything outside the project root (the standard
library included) are excluded whatever the configured exclude list says."""

DEFAULT_EXCLUDE: tuple[str, ...] = (
    "test/**",
    "tests/**",
    "test{,_*}.py",
    "**/test_*.py",
    "**/conftest.py",
)

_GLOBSTAR = "**"
_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def prep_glob_patterns(patterns: Iterable[str] | None) -> tuple[str, ...] | None:
    """Expand *patterns* so directory names also match their contents.

    Every pattern not already ending in ``/**`` is preceded by a
    ``<pattern>/**`` sibling.  Order is preserved and duplicates dropped.
    """
    if patterns is None:
        return None

    result: list[str] = []

    def _add(pattern: str) -> None:
        if pattern not in result:
            result.append(pattern)

    for pattern in patterns:
        if not pattern.endswith("/**"):
            _add(pattern.rstrip("/") + "/**")
        _add(pattern)

    return tuple(result)


@lru_cache(maxsize=1024)
def expand_braces(pattern: str) -> tuple[str, ...]:
    """Expand ``{a,b}`` alternatives, innermost group first."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return (pattern,)
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        for candidate in expand_braces(head + option + tail):
            if candidate not in expanded:
                expanded.append(candidate)
    return tuple(expanded)


def _split(path: str) -> list[str]:
    return path.replace("\\", "/").split("/")


def _match_segments(path_parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    """Match path segments against pattern segments with ``**`` support."""
    if not pattern_parts:
        return not path_parts

    head = pattern_parts[0]
    if head == _GLOBSTAR:
        rest = pattern_parts[1:]
        # ``**`` consumes zero or more whole segments.
        return any(_match_segments(path_parts[i:], rest) for i in range(len(path_parts) + 1))

    if not path_parts:
        return False
    if not fnmatch.fnmatchcase(path_parts[0], head):
        return False
    return _match_segments(path_parts[1:], pattern_parts[1:])


def match_glob(path: str, pattern: str) -> bool:
    """Return True if *path* matches the single glob *pattern*."""
    path_parts = _split(path)
    return any(
        _match_segments(path_parts, _split(candidate)) for candidate in expand_braces(pattern)
    )


def match_any(path: str, patterns: Iterable[str]) -> bool:
    """Return True if *path* matches at least one of *patterns*."""
    return any(match_glob(path, pattern) for pattern in patterns)


class GlobClassifier:
    """Decide whether a file should be instrumented.

    Args:
        include: Include patterns; ``None`` means every file is a candidate.
        exclude: Exclude patterns; the mandatory rules are always
            added in front of them.
    """

    def __init__(
        self,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = DEFAULT_EXCLUDE,
    ) -> None:
        self.include = prep_glob_patterns(include)
        self.exclude: tuple[str, ...] = prep_glob_patterns(
            [*MANDATORY_EXCLUDE, *(exclude or ())]
        ) or ()

    def should_instrument(self, absolute_path: str, relative_path: str) -> bool:
        """Return True if the file passes the include set and no exclude pattern."""
        relative_path = relative_path.replace("\\", "/")
        if relative_path.startswith("./"):
            relative_path = relative_path[2:]

        if self.include is not None and not (
            match_any(absolute_path, self.include) or match_any(relative_path, self.include)
        ):
            return False

        return not (
            match_any(absolute_path, self.exclude) or match_any(relative_path, self.exclude)
        )
