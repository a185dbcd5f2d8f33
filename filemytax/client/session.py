"""Client-side session state: in-memory access token and single-flight refresh."""

from __future__ import annotations

import logging
from threading import Event, Lock
from typing import Callable

LOGGER = logging.getLogger(__name__)

RefreshFn = Callable[[], "str | None"]


class TokenHolder:
    """Holds the current access token in process memory only.

    Populated on login and refresh, cleared on logout and on a denied refresh.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._token: str | None = None

    def get(self) -> str | None:
        with self._lock:
            return self._token

    def set(self, token: str) -> None:
        with self._lock:
            self._token = token

    def clear(self) -> None:
        with self._lock:
            self._token = None


class _Flight:
    __slots__ = ("done", "result", "waiters")

    def __init__(self) -> None:
        self.done = Event()
        self.result: str | None = None
        self.waiters = 0


class SingleFlightRefresh:
    """Runs at most one refresh at a time and shares its outcome.

    The first caller executes ``refresh_fn``; callers arriving while it runs
    block until it finishes and receive the same result. ``None`` means the
    refresh was denied. If ``refresh_fn`` raises, the leader sees the
    exception and every waiter gets ``None``.
    """

    def __init__(self, refresh_fn: RefreshFn) -> None:
        self._refresh_fn = refresh_fn
        self._lock = Lock()
        self._flight: _Flight | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._flight is not None

    @property
    def pending(self) -> int:
        """Number of callers currently waiting on the running refresh."""
        with self._lock:
            return self._flight.waiters if self._flight is not None else 0

    def run(self) -> str | None:
        with self._lock:
            flight = self._flight
            if flight is not None:
                flight.waiters += 1
                leader = False
            else:
                flight = self._flight = _Flight()
                leader = True

        if not leader:
            flight.done.wait()
            return flight.result

        try:
            flight.result = self._refresh_fn()
            return flight.result
        finally:
            # Waiters must be released on every exit path.
            with self._lock:
                self._flight = None
            flight.done.set()
