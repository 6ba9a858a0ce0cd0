from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    message: str
    detail: Any = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Ok[T] | Err


class DeadlineExceeded(TimeoutError):
    """Raised when an invocation runs past its hard time budget."""


class Deadline:
    """Monotonic time budget shared by the stages of one invocation."""

    def __init__(self, seconds: float | None, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self, stage: str = "") -> None:
        if self.expired():
            label = f" during {stage}" if stage else ""
            raise DeadlineExceeded(f"time budget of {self.seconds:.1f}s exceeded{label}")
