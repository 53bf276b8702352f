from __future__ import annotations
import logging

from flask import Blueprint, current_app, jsonify, request, url_for

from donation_pages.models.blocks import resolve_layout, resolve_preset_amounts
from donation_pages.rendering import render
from donation_pages.rendering import pages
from donation_pages.services.campaign_service import get_public_campaign, list_media
from donation_pages.services.checkout_service import (
    CheckoutOrchestrator,
    CheckoutSession,
    parse_amount,
)
from donation_pages.services.gateway import get_gateway
from donation_pages.services.payments import build_confirmer, payment_configured
from donation_pages.services.status_poller import PollOutcome, ensure_polling
from donation_pages.utils.errors import ApiError, PaymentNotConfiguredError, get_error_message

logger = logging.getLogger(__name__)

pages_bp = Blueprint("pages", __name__)


def _public_base() -> str:
    return (current_app.config.get("PUBLIC_BASE_URL") or request.host_url).rstrip("/")


def _publishable_key() -> str:
    return current_app.config.get("STRIPE_PUBLISHABLE_KEY") or ""


def _campaign_url(campaign_id: str) -> str:
    return f"{_public_base()}/donate/{campaign_id}"


def _fields() -> dict:
    if request.is_json:
        body = request.get_json(silent=True) or {}
        amount = body.get("amount")
        return {
            "preset": None,
            "custom_amount": "" if amount is None else str(amount),
            "donor_email": (body.get("donor_email") or "").strip(),
            "message": (body.get("message") or "").strip(),
            "change_amount": False,
        }
    return {
        "preset": parse_amount(request.form.get("preset")),
        "custom_amount": (request.form.get("custom_amount") or "").strip(),
        "donor_email": (request.form.get("donor_email") or "").strip(),
        "message": (request.form.get("message") or "").strip(),
        "change_amount": request.form.get("change_amount") == "1",
    }


def _load(campaign_id: str):
    campaign = get_public_campaign(get_gateway(), campaign_id)
    blocks = resolve_layout(campaign)
    return campaign, blocks


def _render_donate(campaign, blocks, *, orchestrator=None, error=None) -> str:
    api = get_gateway()
    nodes = render(
        blocks,
        campaign,
        on_donate_click=lambda: None,
        media_loader=lambda cid: list_media(api, cid),
    )
    form = pages.amount_form(
        action=url_for("pages.checkout", campaign_id=campaign.id),
        campaign_title=campaign.title or "Campaign",
        presets=resolve_preset_amounts(blocks),
        selected=orchestrator.preset if orchestrator else None,
        custom_amount=orchestrator.custom_amount if orchestrator else "",
        donor_email=orchestrator.donor_email if orchestrator else "",
        message=orchestrator.message if orchestrator else "",
        error=error,
    )
    return pages.donate_page(campaign.title or "Campaign", nodes, form)


@pages_bp.get("/donate/<campaign_id>")
def donate_page(campaign_id):
    try:
        campaign, blocks = _load(campaign_id)
    except ApiError as e:
        return pages.error_page(get_error_message(e)), e.status_code or 502
    if not payment_configured(_publishable_key()):
        return pages.not_configured_page(), 503
    return _render_donate(campaign, blocks)


# POST /donate/<campaign_id>/checkout  form fields or JSON { amount, donor_email?, message? }
@pages_bp.post("/donate/<campaign_id>/checkout")
def checkout(campaign_id):
    wants_json = request.is_json
    try:
        confirmer = build_confirmer(_publishable_key())
    except PaymentNotConfiguredError as e:
        if wants_json:
            return jsonify({"error": str(e)}), 503
        return pages.not_configured_page(), 503
    try:
        campaign, blocks = _load(campaign_id)
    except ApiError as e:
        if wants_json:
            return jsonify({"error": get_error_message(e)}), e.status_code or 502
        return pages.error_page(get_error_message(e)), e.status_code or 502

    fields = _fields()
    orch = CheckoutOrchestrator(
        get_gateway(),
        campaign.id or campaign_id,
        confirmer,
        return_base_url=_public_base(),
        preset_amounts=resolve_preset_amounts(blocks),
    )
    if fields["preset"] is not None:
        orch.select_preset(fields["preset"])
    else:
        orch.set_custom_amount(fields["custom_amount"])
    orch.donor_email = fields["donor_email"]
    orch.message = fields["message"]

    if fields["change_amount"]:
        return _render_donate(campaign, blocks, orchestrator=orch)

    session = orch.submit()
    if session is None:
        if wants_json:
            return jsonify({"error": orch.error}), 400
        return _render_donate(campaign, blocks, orchestrator=orch, error=orch.error), 400

    if wants_json:
        return jsonify(
            {
                "clientSecret": session.client_secret,
                "donation_id": session.donation_id,
                "amount": session.amount,
                "return_url": orch.return_url,
            }
        ), 200
    return pages.payment_page(
        campaign_title=campaign.title or "Campaign",
        publishable_key=_publishable_key(),
        client_secret=session.client_secret,
        amount=session.amount,
        return_url=orch.return_url,
        change_amount_action=url_for("pages.checkout", campaign_id=campaign_id),
        donor_email=orch.donor_email,
        message=orch.message,
    )


# POST /donate/<campaign_id>/confirm  { client_secret, donation_id, amount, payment_method? }
@pages_bp.post("/donate/<campaign_id>/confirm")
def confirm(campaign_id):
    body = request.get_json(force=True, silent=True) or {}
    secret = body.get("client_secret")
    donation_id = body.get("donation_id")
    if not secret or not donation_id:
        return jsonify({"error": "client_secret and donation_id are required"}), 400
    try:
        confirmer = build_confirmer(_publishable_key())
    except PaymentNotConfiguredError as e:
        return jsonify({"error": str(e)}), 503

    orch = CheckoutOrchestrator(
        get_gateway(), campaign_id, confirmer, return_base_url=_public_base()
    )
    orch.resume(
        CheckoutSession(secret, str(donation_id), parse_amount(str(body.get("amount"))) or 0)
    )
    result = orch.confirm(body.get("payment_method"))
    if result.error:
        return jsonify({"error": result.error}), 402
    return jsonify(
        {
            "status": result.status,
            "redirect_url": result.redirect_url,
            "return_url": orch.return_url,
        }
    ), 200


@pages_bp.get("/donate/<campaign_id>/thank-you")
def thank_you(campaign_id):
    donation_id = request.args.get("donation_id")
    if not donation_id:
        return pages.thank_you_page(
            outcome="error",
            donation=None,
            error="Missing donation reference.",
            campaign_url=_campaign_url(campaign_id),
        ), 400

    cfg = current_app.config
    handle = ensure_polling(
        get_gateway(),
        donation_id,
        cache=cfg.get("CACHE"),
        interval=cfg["STATUS_POLL_INTERVAL"],
        max_attempts=cfg["STATUS_POLL_MAX_ATTEMPTS"],
    )
    # None: too many polls running, the page reloads and asks again
    if handle is None or not handle.done:
        return pages.thank_you_page(outcome=PollOutcome.PENDING.value, donation=None, error=None)

    title = ""
    if handle.outcome is PollOutcome.SUCCEEDED:
        try:
            title = get_public_campaign(get_gateway(), campaign_id).title or ""
        except ApiError as e:
            logger.info("[thank-you] campaign title unavailable: %s", e.message)
    return pages.thank_you_page(
        outcome=handle.outcome.value,
        donation=handle.donation,
        error=handle.error,
        campaign_title=title,
        campaign_url=_campaign_url(campaign_id),
    )
