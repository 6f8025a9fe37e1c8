# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import contextlib
import sys
import types
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from leadsync.store import ContactStore


class StepClock:
    """
    Deterministic wall clock for the store.

    Every call returns the current instant; advance() moves it forward.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(tmp_path: Path, clock: StepClock) -> Iterator[ContactStore]:
    s = ContactStore(tmp_path / "state.db", clock=clock)
    try:
        yield s
    finally:
        s.close()


@contextlib.contextmanager
def fake_clock(monkeypatch) -> Iterator[types.SimpleNamespace]:
    """
    Freeze time and capture sleeps.

    - Overrides time.monotonic() so deadlines see our clock.
    - Overrides time.sleep(dt) to *advance* the frozen clock by dt and record dt.

    Exposes:
      now() -> float            current monotonic time
      advance(dt)               manually advance without calling sleep()
      sleeps -> list[float]     every sleep() duration, in order
    """
    t = {"now": 1_000_000.0}
    sleeps: list[float] = []

    def monotonic():
        return t["now"]

    def sleep(dt):
        dt = float(dt)
        sleeps.append(dt)
        if dt > 0:
            t["now"] += dt

    monkeypatch.setattr("time.monotonic", monotonic)
    monkeypatch.setattr("time.sleep", sleep)

    yield types.SimpleNamespace(
        now=lambda: t["now"],
        advance=lambda dt: t.__setitem__("now", t["now"] + float(dt)),
        sleeps=sleeps,
    )


@pytest.fixture
def frozen_time(monkeypatch) -> Iterator[types.SimpleNamespace]:
    with fake_clock(monkeypatch) as clk:
        yield clk


@pytest.fixture
def clean_env(monkeypatch) -> pytest.MonkeyPatch:
    """Drop every leadsync-related variable a developer's shell or .env may carry."""
    for name in (
        "LEADSYNC_CONFIG",
        "NEVERBOUNCE_API_KEY",
        "NEVERBOUNCE_BASE_URL",
        "NEVERBOUNCE_MAX_ATTEMPTS",
        "NEVERBOUNCE_POLL_INTERVAL_SEC",
        "NEVERBOUNCE_POLL_TIMEOUT_SEC",
        "MAUTIC_BASE_URL",
        "MAUTIC_USER",
        "MAUTIC_PASS",
        "MAUTIC_MAX_ATTEMPTS",
        "HTTP_TIMEOUT_SEC",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
