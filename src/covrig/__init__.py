"""Process-safe, cache-aware coverage orchestration for Python."""

from __future__ import annotations

__version__ = "0.4.0"

from covrig.core import Covrig, FileRecord
from covrig.startup import process_startup

__all__ = ["Covrig", "FileRecord", "__version__", "process_startup"]
