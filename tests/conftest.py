"""
Pytest configuration and shared fixtures.

Every test runs against the in-memory engine from dockrs.testing; nothing
here talks to a real daemon or needs a TTY.
"""

from typing import List, Sequence

import pytest

from dockrs.core.models import Candidate, ResourceKind
from dockrs.testing import FakeEngineClient, scripted_terminal


@pytest.fixture
def engine() -> FakeEngineClient:
    """Three containers: web (running), db (exited), cache (running)."""
    fake = FakeEngineClient()
    fake.add(ResourceKind.CONTAINER, "abc123", "web", "running", image="nginx")
    fake.add(ResourceKind.CONTAINER, "abd456", "db", "exited", image="postgres")
    fake.add(ResourceKind.CONTAINER, "ffe789", "cache", "running", image="redis")
    return fake


@pytest.fixture
def terminal():
    """Pipe-backed terminal input; tests send keys before or during a selection."""
    with scripted_terminal() as scripted:
        yield scripted


class PickingSelector:
    """Selector stand-in returning candidates at fixed positions."""

    def __init__(self, *positions: int):
        self.positions = positions
        self.calls: List[Sequence[Candidate]] = []
        self.multiple: List[bool] = []

    async def __call__(self, candidates: Sequence[Candidate], multiple: bool) -> List[Candidate]:
        self.calls.append(list(candidates))
        self.multiple.append(multiple)
        return [candidates[i] for i in self.positions]


@pytest.fixture
def picker():
    return PickingSelector
