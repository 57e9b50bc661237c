"""Test configuration to ensure project package import resolution.

Adds the repository root to sys.path so `import punchin` works in CI where the
checkout directory may not be on PYTHONPATH by default, and this directory so
the shared `fakes` helpers import by name.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
HERE = Path(__file__).resolve().parent
for path in (ROOT, HERE):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fakes import InMemoryStore  # noqa: E402


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
