import time

from donation_pages.services import status_poller
from donation_pages.services.status_poller import (
    PAYMENT_FAILED,
    PollHandle,
    PollOutcome,
    ensure_polling,
    forget,
    poll_donation_status,
    start_polling,
)

DONATION = "/api/donations/d1"


def _donation(status, **kw):
    return (200, {"id": "d1", "status": status, "amount_cents": 2500, "currency": "usd", **kw})


def test_succeeds_on_last_attempt(api, backend):
    backend.on("GET", DONATION, *([_donation("pending")] * 14), _donation("succeeded"))
    handle = poll_donation_status(api, "d1", interval=0, max_attempts=15)

    assert handle.outcome is PollOutcome.SUCCEEDED
    assert handle.attempts == 15
    assert backend.count("GET", DONATION) == 15
    assert handle.donation.amount == 25.0
    assert handle.done


def test_times_out_when_still_pending(api, backend):
    backend.on("GET", DONATION, _donation("pending"))
    handle = poll_donation_status(api, "d1", interval=0, max_attempts=15)

    assert handle.outcome is PollOutcome.TIMEOUT
    assert handle.error is None
    assert backend.count("GET", DONATION) == 15


def test_failed_and_canceled_are_failures(api, backend):
    for status in ("failed", "canceled"):
        backend.on("GET", DONATION, _donation("pending"), _donation(status))
        handle = poll_donation_status(api, "d1", interval=0, max_attempts=5)
        assert handle.outcome is PollOutcome.FAILED
        assert handle.error == PAYMENT_FAILED
        assert handle.attempts == 2


def test_backend_error_stops_polling(api, backend):
    backend.on("GET", DONATION, (404, {"error": "Donation not found"}))
    handle = poll_donation_status(api, "d1", interval=0)
    assert handle.outcome is PollOutcome.ERROR
    assert handle.error == "Donation not found"
    assert backend.count("GET", DONATION) == 1


def test_cancel_before_first_poll(api, backend):
    handle = PollHandle("d1")
    handle.cancel()
    poll_donation_status(api, "d1", interval=0, handle=handle)
    assert handle.outcome is PollOutcome.CANCELLED
    assert backend.calls == []


def test_cancel_during_wait(api, backend):
    backend.on("GET", DONATION, _donation("pending"))
    handle = start_polling(api, "d1", interval=30, max_attempts=15)
    assert _wait_for_first_poll(backend)
    handle.cancel()
    assert handle.wait(5)
    assert handle.outcome is PollOutcome.CANCELLED
    assert backend.count("GET", DONATION) == 1


def test_ensure_polling_reuses_running_poll(api, backend):
    backend.on("GET", DONATION, _donation("pending"))
    first = ensure_polling(api, "d1", interval=30, max_attempts=15)
    assert ensure_polling(api, "d1", interval=30, max_attempts=15) is first

    forget("d1")
    assert first.wait(5)
    assert first.outcome is PollOutcome.CANCELLED
    assert "d1" not in status_poller._active


def test_finished_polls_leave_the_registry(api, progress_cache):
    handles = [
        ensure_polling(api, f"gone-{i}", cache=progress_cache, interval=0, max_attempts=2)
        for i in range(20)
    ]
    for handle in handles:
        assert handle.wait(5)
        assert handle.outcome is PollOutcome.ERROR

    assert status_poller._active == {}
    assert len(progress_cache.data) == 20
    assert set(progress_cache.ttls.values()) == {status_poller.STATUS_RESULT_TTL}


def test_reload_after_finish_reads_the_kept_outcome(api, backend, progress_cache):
    backend.on("GET", DONATION, _donation("succeeded", message="Go!"))
    first = ensure_polling(api, "d1", cache=progress_cache, interval=0)
    assert first.wait(5)

    again = ensure_polling(api, "d1", cache=progress_cache, interval=0)
    assert again is not first
    assert again.done
    assert again.outcome is PollOutcome.SUCCEEDED
    assert again.donation.amount == 25.0
    assert again.donation.message == "Go!"
    assert backend.count("GET", DONATION) == 1
    assert status_poller._active == {}


def test_cancelled_poll_is_not_kept(api, backend, progress_cache):
    backend.on("GET", DONATION, _donation("pending"))
    handle = ensure_polling(api, "d1", cache=progress_cache, interval=30)
    assert _wait_for_first_poll(backend)
    forget("d1")
    assert handle.wait(5)
    assert progress_cache.data == {}


def test_registry_refuses_polls_past_the_cap(api, backend, monkeypatch):
    monkeypatch.setattr(status_poller, "STATUS_POLL_MAX_ACTIVE", 1)
    backend.on("GET", DONATION, _donation("pending"))
    first = ensure_polling(api, "d1", interval=30)
    assert first is not None
    assert ensure_polling(api, "d2", interval=30) is None
    assert ensure_polling(api, "d1", interval=30) is first
    assert list(status_poller._active) == ["d1"]


def _wait_for_first_poll(backend, timeout=5):
    deadline = time.monotonic() + timeout
    while backend.count("GET", DONATION) < 1:
        if time.monotonic() > deadline:
            return False
        time.sleep(0.005)
    return True
