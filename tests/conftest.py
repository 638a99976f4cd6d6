"""Shared fixtures for the build-info accumulator tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from buildinfo_accumulator.schemas import BuildIdentity
from buildinfo_accumulator.store import FragmentStore


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo any structlog configuration a test (e.g., the CLI) applied."""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Root directory for staging areas."""
    return tmp_path / "buildinfo"


@pytest.fixture
def store(temp_root: Path) -> FragmentStore:
    """A fragment store rooted in a per-test temp directory."""
    return FragmentStore(temp_root)


@pytest.fixture
def identity() -> BuildIdentity:
    """A valid build identity."""
    return BuildIdentity.create("backend-api", "42", "platform")
