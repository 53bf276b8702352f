from __future__ import annotations
from typing import Any

GENERIC_TRANSPORT_MESSAGE = "An error occurred"


class ApiError(Exception):
    """A failed backend call: transport failure, non-2xx, or an error body."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class SessionExpiredError(ApiError):
    """Credentials could not be refreshed; the stored session was torn down."""


class PaymentNotConfiguredError(Exception):
    pass


def error_from_response(resp) -> ApiError:
    payload = None
    message = None
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        message = str(payload["error"])
    if not message:
        message = (
            f"Request failed with status code {resp.status_code}"
            if resp.status_code
            else GENERIC_TRANSPORT_MESSAGE
        )
    return ApiError(message, status_code=resp.status_code, payload=payload)


def get_error_message(err: BaseException | None) -> str:
    if isinstance(err, ApiError):
        return err.message or GENERIC_TRANSPORT_MESSAGE
    if isinstance(err, Exception) and str(err):
        return str(err)
    return "An unknown error occurred"
