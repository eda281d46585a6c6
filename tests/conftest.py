"""Pytest configuration for deepstate tests.

Ensures the project root is in sys.path so imports work correctly.
"""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.state.types import AgentState  # noqa: E402


@pytest.fixture
def state() -> AgentState:
    return AgentState()


@pytest.fixture
def events() -> list[dict]:
    return []


@pytest.fixture
def on_event(events):
    return events.append
