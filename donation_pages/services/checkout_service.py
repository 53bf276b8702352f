"""
Donation checkout.

SelectingAmount -> CreatingSession -> AwaitingConfirmation -> Succeeded | Failed

"Change amount" returns to SelectingAmount from AwaitingConfirmation or
Failed and keeps the donor's email and message. Failures while creating a
session leave the checkout in SelectingAmount with the error surfaced.
"""

from __future__ import annotations
import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from urllib.parse import urlencode

from donation_pages.models.blocks import DEFAULT_PRESET_AMOUNTS
from donation_pages.services.donation_service import start_checkout
from donation_pages.services.gateway import ApiClient
from donation_pages.services.payments import ConfirmationResult
from donation_pages.utils.errors import (
    ApiError,
    SessionExpiredError,
    get_error_message,
)
from donation_pages.utils.metrics import CHECKOUT_SESSIONS

logger = logging.getLogger(__name__)

INVALID_AMOUNT = "Please enter a valid amount."


class CheckoutState(str, Enum):
    SELECTING_AMOUNT = "selecting_amount"
    CREATING_SESSION = "creating_session"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckoutSession:
    client_secret: str
    donation_id: str
    amount: float

    def to_dict(self) -> dict:
        return {
            "clientSecret": self.client_secret,
            "donationId": self.donation_id,
            "amount": self.amount,
        }


def thank_you_url(base_url: str, campaign_id: str, donation_id: str) -> str:
    query = urlencode({"donation_id": donation_id})
    return f"{base_url.rstrip('/')}/donate/{campaign_id}/thank-you?{query}"


def parse_amount(text: str | None) -> float | None:
    try:
        value = float((text or "").strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class CheckoutOrchestrator:
    def __init__(
        self,
        api: ApiClient,
        campaign_id: str,
        confirm_payment: Callable[..., ConfirmationResult],
        *,
        return_base_url: str,
        preset_amounts: list[float] | None = None,
    ):
        self.api = api
        self.campaign_id = campaign_id
        self.confirm_payment = confirm_payment
        self.return_base_url = return_base_url
        self.preset_amounts = list(preset_amounts or DEFAULT_PRESET_AMOUNTS)

        self.state = CheckoutState.SELECTING_AMOUNT
        self.preset: float | None = None
        self.custom_amount = ""
        self.donor_email = ""
        self.message = ""
        self.session: CheckoutSession | None = None
        self.redirect_url: str | None = None
        self.error: str | None = None
        self._lock = threading.Lock()

    # --- amount selection -------------------------------------------------

    def select_preset(self, amount: float) -> None:
        self.preset = amount
        self.custom_amount = ""

    def set_custom_amount(self, text: str) -> None:
        self.custom_amount = text
        self.preset = None

    @property
    def selected_amount(self) -> float | None:
        if self.preset is not None:
            return self.preset
        return parse_amount(self.custom_amount) if self.custom_amount else None

    # --- transitions ------------------------------------------------------

    def submit(self) -> CheckoutSession | None:
        """
        Create a checkout session for the selected amount.

        Returns None, with `error` set, when the amount is invalid or the
        backend refuses. A submit while another is in flight is ignored.
        """
        with self._lock:
            if self.state is not CheckoutState.SELECTING_AMOUNT:
                logger.debug("[checkout] submit ignored in state %s", self.state.value)
                return None
            amount = self.selected_amount
            if amount is None or amount <= 0:
                self.error = INVALID_AMOUNT
                return None
            self.error = None
            self.state = CheckoutState.CREATING_SESSION

        try:
            data = start_checkout(
                self.api,
                campaign_id=self.campaign_id,
                amount=amount,
                donor_email=self.donor_email.strip() or None,
                message=self.message.strip() or None,
            )
        except SessionExpiredError:
            with self._lock:
                self.state = CheckoutState.SELECTING_AMOUNT
            raise
        except ApiError as e:
            return self._session_failed(get_error_message(e))
        except Exception:
            with self._lock:
                self.state = CheckoutState.SELECTING_AMOUNT
            raise

        secret = data.get("clientSecret")
        donation_id = data.get("donation_id")
        if data.get("error") or not secret or not donation_id:
            return self._session_failed(data.get("error") or "Checkout failed")

        session = CheckoutSession(secret, str(donation_id), amount)
        with self._lock:
            self.session = session
            self.state = CheckoutState.AWAITING_CONFIRMATION
        CHECKOUT_SESSIONS.labels(outcome="created").inc()
        logger.info(
            "[checkout] session created campaign=%s donation_id=%s",
            self.campaign_id,
            session.donation_id,
        )
        return session

    def _session_failed(self, message: str) -> None:
        CHECKOUT_SESSIONS.labels(outcome="failed").inc()
        logger.info("[checkout] session failed campaign=%s: %s", self.campaign_id, message)
        with self._lock:
            self.error = message
            self.state = CheckoutState.SELECTING_AMOUNT
        return None

    def resume(self, session: CheckoutSession) -> None:
        """Pick up a session created earlier (e.g. by another request)."""
        with self._lock:
            self.session = session
            self.redirect_url = None
            self.error = None
            self.state = CheckoutState.AWAITING_CONFIRMATION

    @property
    def return_url(self) -> str | None:
        if self.session is None:
            return None
        return thank_you_url(
            self.return_base_url, self.campaign_id, self.session.donation_id
        )

    def confirm(self, payment_method: str | None = None) -> ConfirmationResult:
        if self.state is not CheckoutState.AWAITING_CONFIRMATION or self.session is None:
            raise RuntimeError("no checkout session awaiting confirmation")
        self.error = None
        try:
            result = self.confirm_payment(
                self.session.client_secret, self.return_url, payment_method
            )
        except Exception as e:
            result = ConfirmationResult(error=get_error_message(e))

        if result.error:
            self.error = result.error
            self.state = CheckoutState.FAILED
        elif result.redirect_url:
            self.redirect_url = result.redirect_url
        elif result.status == "succeeded":
            self.state = CheckoutState.SUCCEEDED
        return result

    def change_amount(self) -> None:
        if self.state not in (
            CheckoutState.AWAITING_CONFIRMATION,
            CheckoutState.FAILED,
        ):
            return
        self.session = None
        self.redirect_url = None
        self.state = CheckoutState.SELECTING_AMOUNT
