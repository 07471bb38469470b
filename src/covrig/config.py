"""Configuration parsing from ``.covrig.yml`` or ``pyproject.toml``."""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from covrig.matching import DEFAULT_EXCLUDE

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".covrig.yml"
PYPROJECT_FILENAME = "pyproject.toml"

ENV_CWD = "COVRIG_CWD"
ENV_CACHE = "COVRIG_CACHE"

KNOWN_REPORTERS = frozenset({"text", "json"})

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _as_list(value: Any) -> list[str]:
    """Accept a scalar where a list is expected; ``None`` becomes empty."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "enable"}
    return bool(value)


@dataclass
class CovrigConfig:
    """Settings consumed by :class:`covrig.core.Covrig`."""

    cwd: str
    """Project root; every relative path is computed against it."""

    include: list[str] | None = None
    """Include patterns.  ``None`` includes every file."""

    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    """Exclude patterns.  Installed packages and files outside ``cwd`` are always excluded."""

    enable_cache: bool = False
    """Cache instrumented source on disk, keyed by content hash."""

    require: list[str] = field(default_factory=list)
    """Modules or scripts to load before anything is instrumented."""

    temp_directory: str = ".covrig_output"
    """Shared directory for per-process coverage snapshots."""

    cache_directory: str = ".cache/covrig"
    """Directory holding ``<hash>.py`` and ``<hash>.map`` cache entries."""

    reporter: list[str] = field(default_factory=lambda: ["text"])
    """Reporter names used by ``report``."""

    report_dir: str = "coverage"
    """Output directory for file-based reporters."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed configuration section."""


def _read_raw(root_path: Path) -> dict[str, Any]:
    covrig_yml = root_path / CONFIG_FILENAME
    if covrig_yml.is_file():
        parsed = yaml.safe_load(covrig_yml.read_text(encoding="utf-8"))
        return parsed if isinstance(parsed, dict) else {}

    pyproject = root_path / PYPROJECT_FILENAME
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            logger.warning("Ignoring unparsable %s: %s", pyproject, exc)
            return {}
        section = data.get("tool", {}).get("covrig", {})
        return section if isinstance(section, dict) else {}

    return {}


def load_config(root: str | Path | None = None) -> CovrigConfig:
    """Load covrig settings for the project at *root*.

    ``COVRIG_CWD`` overrides *root* (child processes inherit it from the
    parent run), and ``COVRIG_CACHE=enable`` turns the disk cache on.
    Missing files or keys fall back to defaults.
    """
    root_path = Path(os.environ.get(ENV_CWD) or root or os.getcwd()).resolve()
    raw = _resolve_dict(_read_raw(root_path))

    include_raw = raw.get("include")
    exclude_raw = raw.get("exclude")

    return CovrigConfig(
        cwd=str(root_path),
        include=_as_list(include_raw) if include_raw else None,
        exclude=_as_list(exclude_raw) if exclude_raw is not None else list(DEFAULT_EXCLUDE),
        enable_cache=(
            _as_bool(raw.get("cache", False)) or os.environ.get(ENV_CACHE) == "enable"
        ),
        require=_as_list(raw.get("require")),
        temp_directory=str(raw.get("temp_directory", ".covrig_output")),
        cache_directory=str(raw.get("cache_directory", ".cache/covrig")),
        reporter=_as_list(raw.get("reporter", "text")) or ["text"],
        report_dir=str(raw.get("report_dir", "coverage")),
        raw=raw,
    )


def validate_config(config: CovrigConfig) -> list[str]:
    """Return a list of human-readable problems with *config*."""
    errors: list[str] = []

    for name in ("include", "exclude"):
        patterns = getattr(config, name) or []
        errors.extend(
            f"{name}: empty pattern at index {i}" for i, p in enumerate(patterns) if not p
        )

    unknown = [name for name in config.reporter if name not in KNOWN_REPORTERS]
    if unknown:
        errors.append(
            f"reporter: unknown reporter(s) {', '.join(unknown)} "
            f"(expected one of: {', '.join(sorted(KNOWN_REPORTERS))})"
        )

    if not config.temp_directory:
        errors.append("temp_directory: must not be empty")
    if config.enable_cache and not config.cache_directory:
        errors.append("cache_directory: must not be empty when the cache is enabled")

    return errors
