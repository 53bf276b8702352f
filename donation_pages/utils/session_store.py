"""
Credential session storage.

Keeps the access token, refresh token and cached user profile in redis so
every worker in the process sees the same signed-in session. Pure data
access: the gateway decides when these values change.
"""

from __future__ import annotations
import json
import os
from typing import Any

import redis

REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
SESSION_KEY_PREFIX = os.getenv("SESSION_KEY_PREFIX", "hh:session")

_client = None


def r():
    global _client
    if _client is None:
        _client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return _client


class CredentialStore:
    ACCESS = "token"
    REFRESH = "refreshToken"
    USER = "user"

    def __init__(self, client=None, prefix: str = SESSION_KEY_PREFIX):
        self._client = client
        self.prefix = prefix

    @property
    def client(self):
        return self._client if self._client is not None else r()

    def _key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def get_access_token(self) -> str | None:
        return self.client.get(self._key(self.ACCESS)) or None

    def set_access_token(self, token: str) -> None:
        self.client.set(self._key(self.ACCESS), token)

    def get_refresh_token(self) -> str | None:
        return self.client.get(self._key(self.REFRESH)) or None

    def set_refresh_token(self, token: str) -> None:
        self.client.set(self._key(self.REFRESH), token)

    def get_user(self) -> dict[str, Any] | None:
        raw = self.client.get(self._key(self.USER))
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            return None
        return user if isinstance(user, dict) else None

    def set_user(self, user: dict[str, Any]) -> None:
        self.client.set(self._key(self.USER), json.dumps(user))

    def save(
        self,
        access_token: str,
        refresh_token: str | None = None,
        user: dict[str, Any] | None = None,
    ) -> None:
        self.set_access_token(access_token)
        if refresh_token:
            self.set_refresh_token(refresh_token)
        if user is not None:
            self.set_user(user)

    def is_authenticated(self) -> bool:
        return bool(self.get_access_token())

    def clear(self) -> None:
        self.client.delete(
            self._key(self.ACCESS), self._key(self.REFRESH), self._key(self.USER)
        )
