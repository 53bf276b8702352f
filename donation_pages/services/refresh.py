"""
Single-flight credential refresh.

Requests that hit an expired access token at the same time share one
refresh call. The coordinator is either idle or refreshing; while
refreshing it holds a FIFO queue of waiters. The request that started the
refresh is replayed first, then each waiter gets the new token and replays
once the request queued ahead of it has finished, so replays keep arrival
order.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Callable, TypeVar

from donation_pages.utils.errors import SessionExpiredError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshCoordinator:
    def __init__(self):
        self._lock = threading.Lock()
        # None while idle, the waiter queue while a refresh is in flight
        self._waiters: deque[Future] | None = None
        # set once the last request in line has replayed
        self._tail: threading.Event | None = None

    @property
    def refreshing(self) -> bool:
        with self._lock:
            return self._waiters is not None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._waiters) if self._waiters is not None else 0

    def run(self, refresh: Callable[[], str], replay: Callable[[str], T]) -> T:
        """
        Replay a request that failed on an expired token.

        `refresh` fetches and stores a new access token; it is called only
        when no other refresh is in flight. `replay` resends the failed
        request with the token it is given. Replays happen one at a time in
        the order the requests arrived.
        """
        turn = threading.Event()
        with self._lock:
            if self._waiters is not None:
                waiter: Future | None = Future()
                self._waiters.append(waiter)
                previous = self._tail
            else:
                waiter = previous = None
                self._waiters = deque()
            self._tail = turn
        if waiter is None:
            return self._lead(refresh, replay, turn)
        logger.debug("[refresh] waiting on in-flight refresh")
        try:
            token = waiter.result()
            previous.wait()
            return replay(token)
        finally:
            turn.set()

    def _lead(self, refresh: Callable[[], str], replay: Callable[[str], T], turn) -> T:
        try:
            token = refresh()
        except Exception as exc:
            turn.set()
            self._release(error=exc)
            if isinstance(exc, SessionExpiredError):
                raise
            raise SessionExpiredError("Session expired") from exc
        try:
            return replay(token)
        finally:
            turn.set()
            self._release(token=token)

    def _release(self, token: str | None = None, error: BaseException | None = None) -> None:
        with self._lock:
            waiters, self._waiters = self._waiters or deque(), None
        for waiter in waiters:
            if error is not None:
                waiter.set_exception(SessionExpiredError("Session expired"))
            else:
                waiter.set_result(token)
