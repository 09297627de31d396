from __future__ import annotations

import asyncio
from collections.abc import Sequence


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: object) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)


class FakeClock:
    """Monotonic clock test double advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class FakeGenerator:
    """TextGenerator test double returning canned responses in order."""

    def __init__(self, responses: Sequence[str], *, model: str = "fake-model") -> None:
        self._responses = list(responses)
        self._model = model
        self.prompts: list[str] = []

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self, prompt: str, *, stop_event: asyncio.Event | None = None
    ) -> str:
        del stop_event
        self.prompts.append(prompt)
        return self._responses.pop(0)
