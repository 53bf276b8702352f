"""
Authenticated request gateway.

Every backend call goes through an `ApiClient`. A client built with a
`CredentialStore` acts for that signed-in user: `TokenAuth` attaches the
stored access token and hooks the response. A 401 on a request that has
not been retried yet is handed to the refresh coordinator, which refreshes
once and replays. A second 401 on the same request, a failed refresh, or a
missing refresh token tears the session down.

A client without a store is anonymous: no token is sent and a 401 is an
ordinary error. Visitor pages use one of those so they never carry, or tear
down, an owner's session.
"""

from __future__ import annotations
import logging
import os
import threading
import weakref
from typing import Any, Callable

import requests
from requests.auth import AuthBase

from donation_pages.services.refresh import RefreshCoordinator
from donation_pages.utils.errors import (
    ApiError,
    SessionExpiredError,
    error_from_response,
)
from donation_pages.utils.metrics import CREDENTIAL_REFRESHES
from donation_pages.utils.session_store import SESSION_KEY_PREFIX, CredentialStore

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:5050")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

ENDPOINTS = {
    "login": "/api/auth/login",
    "refresh": "/api/auth/refresh",
    "campaign_public": "/api/campaigns/{id}/public",
    "campaign_progress": "/api/campaigns/{id}/progress",
    "campaign_media": "/api/campaigns/{id}/media",
    "page_layout": "/api/campaigns/{id}/page-layout",
    "checkout": "/api/donations/checkout",
    "donation": "/api/donations/{id}",
}


class TokenAuth(AuthBase):
    def __init__(self, client: "ApiClient"):
        self.client = client

    def __call__(self, r):
        token = self.client.store.get_access_token()
        if token:
            r.headers["Authorization"] = f"Bearer {token}"
        r.register_hook("response", self.handle_401)
        return r

    def handle_401(self, r, **kwargs):
        if r.status_code != 401:
            return r
        if getattr(r.request, "_auth_retry", False):
            logger.warning("[gateway] replayed request rejected again: %s", r.request.url)
            self.client.end_session()
            raise SessionExpiredError("Session expired", status_code=401)
        if not self.client.store.get_refresh_token():
            self.client.end_session()
            raise SessionExpiredError("Session expired", status_code=401)

        # drain the body so the connection can be reused
        r.content
        r.close()

        def replay(token: str):
            prep = r.request.copy()
            prep.headers["Authorization"] = f"Bearer {token}"
            prep._auth_retry = True
            _r = self.client.session.send(prep, **kwargs)
            _r.history.append(r)
            return _r

        return self.client.coordinator.run(self.client.refresh_access_token, replay)


class _NoAuth(AuthBase):
    """Skips the bearer token and the 401 hook (sign-in itself)."""

    def __call__(self, r):
        return r


NO_AUTH = _NoAuth()


class ApiClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        store: CredentialStore | None = None,
        coordinator: RefreshCoordinator | None = None,
        *,
        on_session_expired: Callable[[], None] | None = None,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.coordinator = coordinator or RefreshCoordinator()
        self.on_session_expired = on_session_expired
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Content-Type", "application/json")
        self.auth = TokenAuth(self) if store is not None else NO_AUTH

    @property
    def anonymous(self) -> bool:
        return self.store is None

    def url(self, endpoint: str, **params: Any) -> str:
        path = ENDPOINTS[endpoint].format(**params) if endpoint in ENDPOINTS else endpoint
        return f"{self.base_url}{path}"

    # --- credentials ------------------------------------------------------

    def refresh_access_token(self) -> str:
        refresh_token = self.store.get_refresh_token() if self.store is not None else None
        if not refresh_token:
            raise SessionExpiredError("Session expired", status_code=401)
        prep = requests.Request(
            "POST",
            self.url("refresh"),
            json={},
            headers={"Authorization": f"Bearer {refresh_token}"},
        ).prepare()
        try:
            resp = self.session.send(prep, timeout=self.timeout)
        except requests.RequestException as exc:
            CREDENTIAL_REFRESHES.labels(outcome="error").inc()
            self.end_session()
            raise SessionExpiredError("Session expired") from exc
        token = None
        if resp.ok:
            try:
                token = (resp.json() or {}).get("access_token")
            except ValueError:
                token = None
        if not token:
            CREDENTIAL_REFRESHES.labels(outcome="rejected").inc()
            logger.info("[gateway] refresh rejected status=%s", resp.status_code)
            self.end_session()
            raise SessionExpiredError("Session expired", status_code=resp.status_code)
        CREDENTIAL_REFRESHES.labels(outcome="ok").inc()
        self.store.set_access_token(token)
        logger.info("[gateway] access token refreshed")
        return token

    def login(self, email: str, password: str) -> dict[str, Any]:
        if self.store is None:
            raise RuntimeError("anonymous client cannot sign in")
        data = self._json(
            self.request(
                "POST", "login", json={"email": email, "password": password}, auth=NO_AUTH
            )
        )
        if "access_token" not in data:
            raise ApiError(data.get("error") or "Invalid credentials", payload=data)
        user = {"id": data.get("id"), "email": data.get("email")}
        self.store.save(data["access_token"], data.get("refresh_token"), user)
        return user

    def end_session(self) -> None:
        if self.store is not None:
            self.store.clear()
        logger.info("[gateway] session torn down")
        if self.on_session_expired:
            self.on_session_expired()

    def logout(self) -> None:
        if self.store is not None:
            self.store.clear()

    # --- requests ---------------------------------------------------------

    def request(self, method: str, endpoint: str, **kwargs: Any) -> requests.Response:
        params = kwargs.pop("path_params", {})
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("auth", self.auth)
        try:
            resp = self.session.request(method, self.url(endpoint, **params), **kwargs)
        except requests.RequestException as exc:
            logger.warning("[gateway] %s %s failed: %s", method, endpoint, exc)
            raise ApiError(str(exc) or "Network Error") from exc
        if not resp.ok:
            raise error_from_response(resp)
        return resp

    def _json(self, resp: requests.Response) -> Any:
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError("Invalid response from server", resp.status_code) from exc

    def get_json(self, endpoint: str, **path_params: Any) -> Any:
        return self._json(self.request("GET", endpoint, path_params=path_params))

    def post_json(self, endpoint: str, body: dict[str, Any], **path_params: Any) -> Any:
        return self._json(
            self.request("POST", endpoint, json=body, path_params=path_params)
        )

    def put_json(self, endpoint: str, body: dict[str, Any], **path_params: Any) -> Any:
        return self._json(
            self.request("PUT", endpoint, json=body, path_params=path_params)
        )


_gateway: ApiClient | None = None


def get_gateway() -> ApiClient:
    """Anonymous process-wide client for visitor pages."""
    global _gateway
    if _gateway is None:
        _gateway = ApiClient()
    return _gateway


def set_gateway(client: ApiClient | None) -> None:
    global _gateway
    _gateway = client


class OwnerSessions:
    """
    Credential sessions of signed-in campaign owners, one per browser.

    Each session id gets its own key prefix in the credential store while the
    HTTP connection pool is shared. A refresh coordinator lives only as long
    as some request of that session holds it: concurrent 401s from one
    browser share a refresh, idle sessions keep nothing in memory.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        *,
        redis_client=None,
        prefix: str = SESSION_KEY_PREFIX,
        timeout: float = HTTP_TIMEOUT,
        http: requests.Session | None = None,
    ):
        self.base_url = base_url
        self.redis_client = redis_client
        self.prefix = prefix
        self.timeout = timeout
        self.http = http or requests.Session()
        self._lock = threading.Lock()
        self._coordinators: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def store(self, sid: str) -> CredentialStore:
        return CredentialStore(self.redis_client, prefix=f"{self.prefix}:{sid}")

    def client(self, sid: str) -> ApiClient:
        with self._lock:
            coordinator = self._coordinators.get(sid)
            if coordinator is None:
                coordinator = RefreshCoordinator()
                self._coordinators[sid] = coordinator
        return ApiClient(
            self.base_url,
            self.store(sid),
            coordinator,
            timeout=self.timeout,
            session=self.http,
        )
