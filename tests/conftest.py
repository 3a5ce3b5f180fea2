"""Pytest configuration ensuring local packages are importable."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List

import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

FIXTURES = Path(__file__).resolve().parent / "fixtures"


class ManualClock:
    """Clock whose time only moves when something sleeps on it."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def actions_html() -> str:
    return (FIXTURES / "actions.html").read_text(encoding="utf-8")
