import json
import threading
from urllib.parse import urlparse

import pytest
from requests import Response, Session
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from donation_pages import create_app
from donation_pages.services import status_poller
from donation_pages.services.gateway import ApiClient, OwnerSessions, set_gateway
from donation_pages.utils.session_store import CredentialStore

API = "http://api.test"


class FakeRedis:
    """The handful of redis commands the app uses, backed by a dict."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def setex(self, key, ttl, value):
        self.ttls[key] = ttl
        return self.set(key, value)

    def delete(self, *keys):
        n = 0
        for k in keys:
            if self.data.pop(k, None) is not None:
                n += 1
        return n


class FakeBackend(BaseAdapter):
    """
    Transport adapter standing in for the backend API.

    Routes map (METHOD, path) to a list of replies; each reply is
    (status, body) or a callable taking the PreparedRequest. Replies are
    consumed in order and the last one repeats.
    """

    def __init__(self):
        super().__init__()
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def on(self, method, path, *replies):
        self.routes[(method.upper(), path)] = list(replies)

    def count(self, method, path):
        return sum(1 for m, p, _ in self.calls if m == method.upper() and p == path)

    def send(self, request, **kwargs):
        path = urlparse(request.url).path
        with self._lock:
            self.calls.append((request.method, path, request.headers.get("Authorization")))
            replies = self.routes.get((request.method, path))
            if not replies:
                reply = (404, {"error": "Not found"})
            elif len(replies) == 1:
                reply = replies[0]
            else:
                reply = replies.pop(0)
        if callable(reply):
            reply = reply(request)
        status, body = reply

        resp = Response()
        resp.status_code = status
        resp.reason = "OK" if status < 400 else "Error"
        resp._content = json.dumps(body).encode() if body is not None else b""
        resp.headers = CaseInsensitiveDict({"Content-Type": "application/json"})
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        resp.connection = self
        resp._content_consumed = True
        return resp

    def close(self):
        pass


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def redis_store():
    return FakeRedis()


@pytest.fixture
def store(redis_store):
    s = CredentialStore(client=redis_store, prefix="test:session")
    s.save("old-token", "refresh-token", {"id": "u1", "email": "owner@example.com"})
    return s


@pytest.fixture
def expired():
    return []


@pytest.fixture
def http(backend):
    session = Session()
    session.mount(API, backend)
    return session


@pytest.fixture
def api(http, store, expired):
    client = ApiClient(
        API,
        store,
        on_session_expired=lambda: expired.append(True),
        timeout=2,
        session=http,
    )
    yield client
    set_gateway(None)


@pytest.fixture(autouse=True)
def _clear_polls():
    yield
    with status_poller._lock:
        handles = list(status_poller._active.values())
        status_poller._active.clear()
    for h in handles:
        h.cancel()


@pytest.fixture
def progress_cache():
    return FakeRedis()


@pytest.fixture
def owner_sessions(http, redis_store):
    return OwnerSessions(API, redis_client=redis_store, timeout=2, http=http)


@pytest.fixture
def app(http, owner_sessions, progress_cache):
    app = create_app(
        config={
            "TESTING": True,
            "API_BASE_URL": API,
            "PUBLIC_BASE_URL": "http://pages.test",
            "STRIPE_PUBLISHABLE_KEY": "pk_test_123",
            "STATUS_POLL_INTERVAL": 0,
            "STATUS_POLL_MAX_ATTEMPTS": 3,
            "SECRET_KEY": "test-secret",
            "CACHE": progress_cache,
        },
        gateway=ApiClient(API, timeout=2, session=http),
        owner_sessions=owner_sessions,
    )
    yield app
    set_gateway(None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def owner_client(app, backend):
    """A browser whose campaign owner has signed in through the builder."""
    owner = app.test_client()
    backend.on(
        "POST",
        "/api/auth/login",
        (200, {"access_token": "owner-token", "refresh_token": "owner-refresh", "id": "u1", "email": "owner@example.com"}),
    )
    assert owner.post("/builder/login", json={"email": "owner@example.com", "password": "pw"}).status_code == 200
    backend.calls.clear()
    return owner


@pytest.fixture
def campaign_payload():
    def make(**overrides):
        data = {
            "id": "c1",
            "title": "Roof Repair Fund",
            "goal": 1000,
            "total_raised": 250,
            "donations_count": 12,
            "page_layout": None,
        }
        data.update(overrides)
        return data

    return make
