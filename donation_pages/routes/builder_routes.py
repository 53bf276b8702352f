from __future__ import annotations
import logging
import secrets

from flask import Blueprint, current_app, jsonify, request, session

from donation_pages.models.blocks import (
    Block,
    add_block,
    blocks_from_document,
    patch_block_props,
    remove_block,
)
from donation_pages.rendering import render
from donation_pages.rendering import pages
from donation_pages.services.campaign_service import (
    get_page_layout,
    get_public_campaign,
    list_media,
    save_page_layout,
)
from donation_pages.services.gateway import ApiClient, OwnerSessions
from donation_pages.utils.errors import ApiError, SessionExpiredError, get_error_message
from donation_pages.utils.page_layout import BLOCK_SCHEMA, BLOCK_TYPES, validate_layout

logger = logging.getLogger(__name__)

builder_bp = Blueprint("builder", __name__)

SIGN_IN_PATH = "/builder/login"

# key of the owner session id in the signed Flask session cookie
SESSION_ID = "sid"


def owner_sessions() -> OwnerSessions:
    return current_app.extensions["owner_sessions"]


def current_owner(required: bool = True) -> ApiClient | None:
    """
    Client acting for the signed-in owner of this browser. Raises
    SessionExpiredError (or returns None when not `required`) when the
    browser has no live credential session.
    """
    sid = session.get(SESSION_ID)
    api = owner_sessions().client(sid) if sid else None
    if api is None or not api.store.is_authenticated():
        if required:
            raise SessionExpiredError("Session expired", status_code=401)
        return None
    return api


@builder_bp.errorhandler(SessionExpiredError)
def _session_expired(e):
    session.pop(SESSION_ID, None)
    return jsonify({"error": "Session expired", "redirect": SIGN_IN_PATH}), 401


@builder_bp.errorhandler(ApiError)
def _api_error(e):
    return jsonify({"error": get_error_message(e)}), e.status_code or 502


def _layout_json(blocks: list[Block]):
    return jsonify({"blocks": [b.to_dict() for b in blocks]})


def _candidate_blocks(body):
    return body.get("blocks") if isinstance(body, dict) else body


# POST /builder/login  { email, password }
@builder_bp.post("/login")
def login():
    body = request.get_json(force=True, silent=True) or {}
    email = (body.get("email") or "").strip()
    password = body.get("password") or ""
    if not email or not password:
        return jsonify({"error": "email and password are required"}), 400
    # fresh id on every sign-in so an old cookie never maps to the new tokens
    sid = secrets.token_urlsafe(32)
    user = owner_sessions().client(sid).login(email, password)
    old = session.get(SESSION_ID)
    if old:
        owner_sessions().store(old).clear()
    session[SESSION_ID] = sid
    logger.info("[builder] owner signed in user=%s", user.get("id"))
    return jsonify(user), 200


@builder_bp.post("/logout")
def logout():
    sid = session.pop(SESSION_ID, None)
    if sid:
        owner_sessions().client(sid).logout()
    return "", 204


@builder_bp.get("/schema")
def schema():
    return jsonify({"types": sorted(BLOCK_TYPES), "blocks": BLOCK_SCHEMA}), 200


@builder_bp.get("/campaigns/<campaign_id>/layout")
def get_layout(campaign_id):
    return _layout_json(get_page_layout(current_owner(), campaign_id)), 200


# PUT /builder/campaigns/<id>/layout  { blocks: [...] } or [...]
@builder_bp.put("/campaigns/<campaign_id>/layout")
def put_layout(campaign_id):
    api = current_owner()
    candidate = _candidate_blocks(request.get_json(force=True, silent=True))
    ok, err = validate_layout(candidate)
    if not ok:
        return jsonify({"error": err}), 400
    blocks = blocks_from_document(candidate)
    return _layout_json(save_page_layout(api, campaign_id, blocks)), 200


# POST /builder/campaigns/<id>/blocks  { type }
@builder_bp.post("/campaigns/<campaign_id>/blocks")
def create_block(campaign_id):
    api = current_owner()
    body = request.get_json(force=True, silent=True) or {}
    block_type = body.get("type")
    if block_type not in BLOCK_TYPES:
        return jsonify({"error": f"type must be one of {', '.join(sorted(BLOCK_TYPES))}"}), 400
    blocks = add_block(get_page_layout(api, campaign_id), block_type)
    ok, err = validate_layout([b.to_dict() for b in blocks])
    if not ok:
        return jsonify({"error": err}), 400
    return _layout_json(save_page_layout(api, campaign_id, blocks)), 201


# PATCH /builder/campaigns/<id>/blocks/<block_id>  { key, value }
@builder_bp.patch("/campaigns/<campaign_id>/blocks/<block_id>")
def update_block(campaign_id, block_id):
    api = current_owner()
    body = request.get_json(force=True, silent=True) or {}
    key = body.get("key")
    if not isinstance(key, str) or not key:
        return jsonify({"error": "key is required"}), 400
    try:
        blocks = patch_block_props(
            get_page_layout(api, campaign_id), block_id, key, body.get("value")
        )
    except KeyError:
        return jsonify({"error": "block not found"}), 404
    return _layout_json(save_page_layout(api, campaign_id, blocks)), 200


@builder_bp.delete("/campaigns/<campaign_id>/blocks/<block_id>")
def delete_block(campaign_id, block_id):
    api = current_owner()
    try:
        blocks = remove_block(get_page_layout(api, campaign_id), block_id)
    except KeyError:
        return jsonify({"error": "block not found"}), 404
    return _layout_json(save_page_layout(api, campaign_id, blocks)), 200


# POST /builder/campaigns/<id>/preview  { blocks: [...] }  -> text/html, nothing saved
@builder_bp.post("/campaigns/<campaign_id>/preview")
def preview(campaign_id):
    api = current_owner()
    candidate = _candidate_blocks(request.get_json(force=True, silent=True))
    ok, err = validate_layout(candidate)
    if not ok:
        return jsonify({"error": err}), 400
    campaign = get_public_campaign(api, campaign_id)
    nodes = render(
        blocks_from_document(candidate),
        campaign,
        on_donate_click=lambda: None,
        media_loader=lambda cid: list_media(api, cid),
    )
    return pages.donate_page(campaign.title or "Campaign", nodes, ""), 200
