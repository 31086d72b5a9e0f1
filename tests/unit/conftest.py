from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from doclink.connection.credentials import BaseCredentialStore


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when a test says so."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay_seconds, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    def fire_next(self) -> None:
        timer = self.pending[0]
        timer.fired = True
        timer.callback()


class FakeClock:
    def __init__(self) -> None:
        self.elapsed = 0.0
        self.start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self.elapsed

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    def advance(self, seconds: float) -> None:
        self.elapsed += seconds


class MemoryCredentialStore(BaseCredentialStore):
    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    def load(self, user_id: str) -> bytes | None:
        return self.blobs.get(user_id)

    def save(self, user_id: str, blob: bytes) -> None:
        self.blobs[user_id] = blob

    def clear(self, user_id: str) -> None:
        self.blobs.pop(user_id, None)


@pytest.fixture()
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore()
