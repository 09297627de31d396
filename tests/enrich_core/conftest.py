from __future__ import annotations

import pytest

import enrich_core.circuit_breaker.breaker as breaker_mod
from tests.enrich_core.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive circuit breaker time from a hand-advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_now", clock.now)
    return clock
