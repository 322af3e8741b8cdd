"""Shared test fixtures for Idea Keeper tests."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure the bots directory is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "bots"))

from ideakeeper.assistant.schema import HealthStatus, InvocationResult
from ideakeeper.board.store import BoardStore


@pytest.fixture
def store(tmp_path):
    return BoardStore(str(tmp_path / "board.db"))


@pytest.fixture
def fake_backend():
    """Backend double with async invoke/check_health."""
    backend = MagicMock()
    backend.name = "fake"
    backend.invoke = AsyncMock(return_value=InvocationResult(message="ok"))
    backend.check_health = AsyncMock(return_value=HealthStatus(available=True, version="1.0.0"))
    return backend
