import threading
import time

import pytest

from donation_pages.services.refresh import RefreshCoordinator
from donation_pages.utils.errors import SessionExpiredError


def _wait_for(pred, timeout=5):
    deadline = time.monotonic() + timeout
    while not pred():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.005)
    return True


def _run_all(coord, refresh, n):
    """Build `n` callers and start the first, which leads the refresh."""
    results = [None] * n

    def caller(i):
        try:
            results[i] = coord.run(refresh, lambda tok: (i, tok))
        except Exception as e:
            results[i] = e

    threads = [threading.Thread(target=caller, args=(0,))]
    threads[0].start()
    for i in range(1, n):
        threads.append(threading.Thread(target=caller, args=(i,)))
    return threads, results


def test_idle_by_default():
    coord = RefreshCoordinator()
    assert not coord.refreshing
    assert coord.pending == 0


def test_single_caller_refreshes_and_replays():
    coord = RefreshCoordinator()
    calls = []

    def refresh():
        calls.append(1)
        return "t1"

    assert coord.run(refresh, lambda tok: f"replayed with {tok}") == "replayed with t1"
    assert calls == [1]
    assert not coord.refreshing


def test_waiters_get_the_leaders_token():
    coord = RefreshCoordinator()
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def refresh():
        calls.append(1)
        entered.set()
        release.wait(5)
        return "t2"

    threads, results = _run_all(coord, refresh, 4)
    assert entered.wait(5)
    for t in threads[1:]:
        t.start()
    assert _wait_for(lambda: coord.pending == 3)
    assert coord.refreshing
    release.set()
    for t in threads:
        t.join(5)

    assert calls == [1]
    assert results == [(0, "t2"), (1, "t2"), (2, "t2"), (3, "t2")]
    assert not coord.refreshing


def test_failed_refresh_rejects_everyone():
    coord = RefreshCoordinator()
    entered = threading.Event()
    release = threading.Event()

    def refresh():
        entered.set()
        release.wait(5)
        raise ValueError("backend down")

    threads, results = _run_all(coord, refresh, 2)
    assert entered.wait(5)
    threads[1].start()
    assert _wait_for(lambda: coord.pending == 1)
    release.set()
    for t in threads:
        t.join(5)

    assert all(isinstance(r, SessionExpiredError) for r in results)
    assert not coord.refreshing

    # back to idle: the next expiry starts a fresh refresh
    assert coord.run(lambda: "t3", lambda tok: tok) == "t3"


def test_session_expired_from_refresh_propagates_unchanged():
    coord = RefreshCoordinator()
    err = SessionExpiredError("Session expired", status_code=401)

    def refresh():
        raise err

    with pytest.raises(SessionExpiredError) as exc:
        coord.run(refresh, lambda tok: tok)
    assert exc.value is err


def test_replays_run_in_arrival_order():
    coord = RefreshCoordinator()
    entered = threading.Event()
    release = threading.Event()
    order = []
    order_lock = threading.Lock()

    def refresh():
        entered.set()
        release.wait(5)
        return "t4"

    def caller(i):
        def replay(tok):
            # later arrivals would overtake without the queue holding them
            time.sleep(0.02 * (4 - i))
            with order_lock:
                order.append(i)
            return tok

        coord.run(refresh, replay)

    threads = [threading.Thread(target=caller, args=(i,)) for i in range(4)]
    threads[0].start()
    assert entered.wait(5)
    for i in range(1, 4):
        threads[i].start()
        assert _wait_for(lambda: coord.pending == i)
    release.set()
    for t in threads:
        t.join(5)

    assert order == [0, 1, 2, 3]
    assert not coord.refreshing


def test_failed_replay_still_lets_the_next_waiter_through():
    coord = RefreshCoordinator()
    entered = threading.Event()
    release = threading.Event()
    results = [None, None, None]

    def refresh():
        entered.set()
        release.wait(5)
        return "t5"

    def caller(i):
        def replay(tok):
            if i == 1:
                raise RuntimeError("replay blew up")
            return (i, tok)

        try:
            results[i] = coord.run(refresh, replay)
        except Exception as e:
            results[i] = e

    threads = [threading.Thread(target=caller, args=(i,)) for i in range(3)]
    threads[0].start()
    assert entered.wait(5)
    for i in range(1, 3):
        threads[i].start()
        assert _wait_for(lambda: coord.pending == i)
    release.set()
    for t in threads:
        t.join(5)

    assert results[0] == (0, "t5")
    assert isinstance(results[1], RuntimeError)
    assert results[2] == (2, "t5")
