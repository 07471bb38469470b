"""Coverage for child processes.

``covrig run`` exports ``COVRIG_CWD`` and puts the packaged ``_bootstrap``
directory on ``PYTHONPATH``.  Its ``sitecustomize`` module calls
:func:`process_startup` in every Python process started underneath, so each
one instruments its imports and writes its own snapshot on exit.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from covrig.config import ENV_CACHE, ENV_CWD, load_config

if TYPE_CHECKING:
    from covrig.core import Covrig

logger = logging.getLogger(__name__)

BOOTSTRAP_DIR = Path(__file__).parent / "_bootstrap"

_active: Covrig | None = None


def process_startup() -> Covrig | None:
    """Wrap this process if it was launched under ``covrig run``.

    Returns the active :class:`Covrig`, or ``None`` when ``COVRIG_CWD`` is
    not set.  Calling it again in the same process returns the same object.
    """
    global _active
    if _active is not None:
        return _active
    if not os.environ.get(ENV_CWD):
        return None

    from covrig.core import Covrig

    _active = Covrig(load_config()).wrap()
    logger.debug("covrig active in pid %d", os.getpid())
    return _active


def child_environment(
    cwd: str | Path, *, enable_cache: bool, base: dict[str, str] | None = None
) -> dict[str, str]:
    """Return the environment for a covered child process tree."""
    env = dict(os.environ if base is None else base)
    env[ENV_CWD] = str(cwd)
    if enable_cache:
        env[ENV_CACHE] = "enable"
    python_path = env.get("PYTHONPATH")
    env["PYTHONPATH"] = (
        f"{BOOTSTRAP_DIR}{os.pathsep}{python_path}" if python_path else str(BOOTSTRAP_DIR)
    )
    return env
