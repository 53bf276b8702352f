from flask import Blueprint, current_app, request

from donation_pages.rendering import pages
from donation_pages.services.campaign_service import get_progress, get_public_campaign
from donation_pages.services.gateway import get_gateway
from donation_pages.utils.errors import ApiError, get_error_message

embed_bp = Blueprint("embed", __name__)


# Read-only progress widget meant for <iframe> embedding on other sites.
@embed_bp.get("/embed/<campaign_id>")
def progress_widget(campaign_id):
    api = get_gateway()
    base = (current_app.config.get("PUBLIC_BASE_URL") or request.host_url).rstrip("/")
    donate_url = f"{base}/donate/{campaign_id}"
    try:
        progress = get_progress(api, campaign_id, cache=current_app.config.get("CACHE"))
    except ApiError as e:
        html = pages.embed_page(
            title=None, progress=None, donate_url=donate_url, error=get_error_message(e)
        )
        return html, e.status_code or 502, _frame_headers()

    try:
        title = get_public_campaign(api, campaign_id).title
    except ApiError:
        title = None
    html = pages.embed_page(title=title, progress=progress, donate_url=donate_url)
    return html, 200, _frame_headers()


def _frame_headers() -> dict:
    return {"Content-Security-Policy": "frame-ancestors *"}
