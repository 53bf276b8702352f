"""
Payment processor boundary (Stripe).

Checkout sessions come back from the backend as a PaymentIntent client
secret. Confirmation happens with the publishable key only; Stripe decides
whether the payment resolves in place or needs the payer redirected.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass

import stripe

from donation_pages.utils.errors import PaymentNotConfiguredError

logger = logging.getLogger(__name__)

STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip()


@dataclass
class ConfirmationResult:
    status: str | None = None
    redirect_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def payment_configured(key: str | None) -> bool:
    return bool(key) and key.startswith("pk_")


def intent_id_from_secret(client_secret: str) -> str:
    return client_secret.split("_secret_", 1)[0]


class StripeConfirmer:
    def __init__(self, publishable_key: str):
        if not payment_configured(publishable_key):
            raise PaymentNotConfiguredError(
                "Payment is not configured. Set STRIPE_PUBLISHABLE_KEY."
            )
        self.publishable_key = publishable_key

    def __call__(
        self,
        client_secret: str,
        return_url: str,
        payment_method: str | None = None,
    ) -> ConfirmationResult:
        params = {"client_secret": client_secret, "return_url": return_url}
        if payment_method:
            params["payment_method"] = payment_method
        try:
            intent = stripe.PaymentIntent.confirm(
                intent_id_from_secret(client_secret),
                api_key=self.publishable_key,
                **params,
            )
        except stripe.StripeError as e:
            logger.info("[payments] confirmation declined: %s", e)
            return ConfirmationResult(error=e.user_message or str(e) or "Payment failed")
        next_action = intent.get("next_action") or {}
        redirect = (next_action.get("redirect_to_url") or {}).get("url")
        return ConfirmationResult(status=intent.get("status"), redirect_url=redirect)


def build_confirmer(publishable_key: str | None = None) -> StripeConfirmer:
    return StripeConfirmer(
        STRIPE_PUBLISHABLE_KEY if publishable_key is None else publishable_key
    )
