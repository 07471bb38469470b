"""Shared fixtures for covrig tests."""

from __future__ import annotations

import builtins
import sys
from typing import TYPE_CHECKING, Any

import pytest
from helpers import write_file

from covrig.accumulator import REGISTER_NAME
from covrig.config import ENV_CACHE, ENV_CWD, CovrigConfig
from covrig.core import Covrig
from covrig.hooks.importer import InstrumentingFinder

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clean_covrig_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests never inherit covrig variables from a surrounding ``covrig run``."""
    monkeypatch.delenv(ENV_CWD, raising=False)
    monkeypatch.delenv(ENV_CACHE, raising=False)


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """A small project with a library package and a test file."""
    root = tmp_path / "project"
    write_file(
        root,
        "lib/calc.py",
        "def add(a, b):\n"
        "    return a + b\n"
        "\n"
        "\n"
        "def sign(x):\n"
        "    if x < 0:\n"
        "        return -1\n"
        "    return 1\n",
    )
    write_file(root, "lib/__init__.py", "")
    write_file(root, "tests/test_calc.py", "def test_add():\n    assert True\n")
    return root


@pytest.fixture()
def make_covrig(project: Path):
    """Factory for :class:`Covrig` instances rooted at the ``project`` fixture."""

    def _make(**overrides: Any) -> Covrig:
        return Covrig(CovrigConfig(cwd=str(project), **overrides))

    return _make


@pytest.fixture()
def restore_import_state():
    """Undo import hooks and modules added during a test."""
    modules = set(sys.modules)
    register = getattr(builtins, REGISTER_NAME, None)
    yield
    if register is None:
        builtins.__dict__.pop(REGISTER_NAME, None)
    else:
        setattr(builtins, REGISTER_NAME, register)
    sys.meta_path[:] = [f for f in sys.meta_path if not isinstance(f, InstrumentingFinder)]
    for name in set(sys.modules) - modules:
        del sys.modules[name]
