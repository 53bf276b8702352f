"""
Post-redirect donation status resolution.

After the processor sends the payer back to the thank-you URL, the donation
is polled every STATUS_POLL_INTERVAL seconds, at most STATUS_POLL_MAX_ATTEMPTS
times, stopping as soon as it reaches a terminal status. Running out of
attempts while still pending ends in TIMEOUT, which is neither success nor
failure. Polls run as a task whose handle can be cancelled.

The thank-you page reloads while it waits, so `ensure_polling` keeps at most
one running poll per donation and at most STATUS_POLL_MAX_ACTIVE overall.
A poll leaves the registry as soon as it finishes; its outcome is kept in
redis for STATUS_RESULT_TTL seconds for the reloads that follow.
"""

from __future__ import annotations
import json
import logging
import os
import threading
from enum import Enum

import redis

from donation_pages.models.campaign import Donation
from donation_pages.services.donation_service import get_donation

from donation_pages.services.gateway import ApiClient
from donation_pages.utils.errors import ApiError, get_error_message
from donation_pages.utils.metrics import STATUS_POLLS

logger = logging.getLogger(__name__)

STATUS_POLL_INTERVAL = float(os.getenv("STATUS_POLL_INTERVAL", "2"))
STATUS_POLL_MAX_ATTEMPTS = int(os.getenv("STATUS_POLL_MAX_ATTEMPTS", "15"))
STATUS_POLL_MAX_ACTIVE = int(os.getenv("STATUS_POLL_MAX_ACTIVE", "100"))
STATUS_RESULT_TTL = int(os.getenv("STATUS_RESULT_TTL", "300"))

PAYMENT_FAILED = "Your payment could not be completed."


class PollOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"


class PollHandle:
    def __init__(self, donation_id: str):
        self.donation_id = donation_id
        self.outcome = PollOutcome.PENDING
        self.donation: Donation | None = None
        self.error: str | None = None
        self.attempts = 0
        self._cancel = threading.Event()
        self._done = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)


def poll_donation_status(
    api: ApiClient,
    donation_id: str,
    *,
    interval: float = STATUS_POLL_INTERVAL,
    max_attempts: int = STATUS_POLL_MAX_ATTEMPTS,
    handle: PollHandle | None = None,
    on_done=None,
) -> PollHandle:
    """
    Poll in the calling thread until the outcome is known. `on_done(handle)`
    runs before the handle reports done.
    """
    handle = handle or PollHandle(donation_id)
    try:
        for attempt in range(1, max_attempts + 1):
            if handle._cancel.is_set():
                handle.outcome = PollOutcome.CANCELLED
                break
            handle.attempts = attempt
            try:
                donation = get_donation(api, donation_id)
            except ApiError as e:
                handle.outcome = PollOutcome.ERROR
                handle.error = get_error_message(e)
                break
            handle.donation = donation
            if donation.status == "succeeded":
                handle.outcome = PollOutcome.SUCCEEDED
                break
            if donation.is_terminal:
                handle.outcome = PollOutcome.FAILED
                handle.error = PAYMENT_FAILED
                break
            if attempt == max_attempts:
                handle.outcome = PollOutcome.TIMEOUT
                break
            if handle._cancel.wait(interval):
                handle.outcome = PollOutcome.CANCELLED
                break
    finally:
        STATUS_POLLS.labels(outcome=handle.outcome.value).inc()
        logger.info(
            "[poll] donation=%s outcome=%s attempts=%d",
            donation_id,
            handle.outcome.value,
            handle.attempts,
        )
        try:
            if on_done is not None:
                on_done(handle)
        finally:
            handle._done.set()
    return handle


def start_polling(api: ApiClient, donation_id: str, *, on_done=None, **kwargs) -> PollHandle:
    """Poll on a background thread; returns immediately with the handle."""
    handle = kwargs.pop("handle", None) or PollHandle(donation_id)
    threading.Thread(
        target=poll_donation_status,
        args=(api, donation_id),
        kwargs={**kwargs, "handle": handle, "on_done": on_done},
        name=f"poll-{donation_id}",
        daemon=True,
    ).start()
    return handle


# --- finished outcomes ----------------------------------------------------


def _result_key(donation_id: str) -> str:
    return f"donation:{donation_id}:status:v1"


def save_result(cache, handle: PollHandle) -> None:
    if cache is None or STATUS_RESULT_TTL <= 0:
        return
    doc = {
        "outcome": handle.outcome.value,
        "error": handle.error,
        "attempts": handle.attempts,
        "donation": handle.donation.extra if handle.donation else None,
    }
    try:
        cache.setex(_result_key(handle.donation_id), STATUS_RESULT_TTL, json.dumps(doc, default=str))
    except redis.RedisError as e:
        logger.warning("[poll] result cache write failed: %s", e)


def load_result(cache, donation_id: str) -> PollHandle | None:
    """A finished handle rebuilt from the cache, or None."""
    if cache is None:
        return None
    try:
        raw = cache.get(_result_key(donation_id))
    except redis.RedisError as e:
        logger.warning("[poll] result cache read failed: %s", e)
        return None
    if not raw:
        return None
    doc = json.loads(raw)
    handle = PollHandle(donation_id)
    handle.outcome = PollOutcome(doc["outcome"])
    handle.error = doc.get("error")
    handle.attempts = doc.get("attempts") or 0
    if isinstance(doc.get("donation"), dict):
        handle.donation = Donation.from_api(doc["donation"])
    handle._done.set()
    return handle


# --- registry -------------------------------------------------------------

_lock = threading.Lock()
_active: dict[str, PollHandle] = {}


def ensure_polling(
    api: ApiClient, donation_id: str, *, cache=None, **kwargs
) -> PollHandle | None:
    """
    The running or recently finished poll for a donation, starting one when
    there is neither. Returns None when STATUS_POLL_MAX_ACTIVE polls are
    already running; callers retry later.
    """
    finished = load_result(cache, donation_id)
    if finished is not None:
        return finished

    def done(handle: PollHandle) -> None:
        if handle.outcome is not PollOutcome.CANCELLED:
            save_result(cache, handle)
        with _lock:
            if _active.get(donation_id) is handle:
                del _active[donation_id]

    with _lock:
        handle = _active.get(donation_id)
        if handle is not None:
            return handle
        if len(_active) >= STATUS_POLL_MAX_ACTIVE:
            logger.warning("[poll] %d polls running, not starting donation=%s", len(_active), donation_id)
            return None
        handle = PollHandle(donation_id)
        _active[donation_id] = handle
    return start_polling(api, donation_id, handle=handle, on_done=done, **kwargs)


def forget(donation_id: str) -> None:
    with _lock:
        handle = _active.pop(donation_id, None)
    if handle is not None:
        handle.cancel()
