"""Generation counter used to invalidate in-flight sampling and tracing work."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .errors import SessionInvalidated


class SessionCounter:
    """Hands out tokens; beginning a new session makes every older token stale."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def begin(self) -> "SessionToken":
        with self._lock:
            self._generation += 1
            return SessionToken(self._generation, self)


@dataclass(frozen=True)
class SessionToken:
    generation: int
    counter: SessionCounter

    @property
    def is_current(self) -> bool:
        return self.counter.generation == self.generation

    def ensure_current(self) -> None:
        if not self.is_current:
            raise SessionInvalidated(
                f"Session {self.generation} was replaced by session {self.counter.generation}"
            )
