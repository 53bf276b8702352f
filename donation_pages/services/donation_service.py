from __future__ import annotations
from typing import Any

from donation_pages.models.campaign import Donation
from donation_pages.services.gateway import ApiClient


def start_checkout(
    api: ApiClient,
    *,
    campaign_id: str,
    amount: float,
    donor_email: str | None = None,
    message: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"campaign_id": campaign_id, "amount": amount}
    if donor_email:
        body["donor_email"] = donor_email
    if message:
        body["message"] = message
    data = api.post_json("checkout", body)
    return data if isinstance(data, dict) else {}


def get_donation(api: ApiClient, donation_id: str) -> Donation:
    data = api.get_json("donation", id=donation_id)
    return Donation.from_api(data if isinstance(data, dict) else {})
