# donation_pages/__init__.py
import logging
import os
import secrets

from dotenv import load_dotenv

# before the submodules below read their os.getenv constants
load_dotenv(dotenv_path=".env")

from flask import Flask  # noqa: E402

from donation_pages.routes import admin_bp, builder_bp, embed_bp, pages_bp  # noqa: E402
from donation_pages.services.gateway import ApiClient, OwnerSessions, set_gateway  # noqa: E402
from donation_pages.utils.session_store import r  # noqa: E402


def create_app(config=None, gateway=None, owner_sessions=None):
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    app.config["API_BASE_URL"] = os.getenv("API_BASE_URL", "http://127.0.0.1:5050")
    app.config["PUBLIC_BASE_URL"] = os.getenv("PUBLIC_BASE_URL", "")
    app.config["STRIPE_PUBLISHABLE_KEY"] = os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip()
    app.config["STATUS_POLL_INTERVAL"] = float(os.getenv("STATUS_POLL_INTERVAL", "2"))
    app.config["STATUS_POLL_MAX_ATTEMPTS"] = int(os.getenv("STATUS_POLL_MAX_ATTEMPTS", "15"))
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")
    # signs the builder session cookie; a random key logs owners out on restart
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    if config:
        app.config.update(config)
    if "CACHE" not in app.config:
        # progress widget and finished donation polls share the session redis
        app.config["CACHE"] = r()

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if gateway is None:
        gateway = ApiClient(app.config["API_BASE_URL"])
    set_gateway(gateway)
    if owner_sessions is None:
        owner_sessions = OwnerSessions(app.config["API_BASE_URL"])
    app.extensions["owner_sessions"] = owner_sessions

    @app.get("/__ping")
    def __ping():
        return {"ok": True, "api_base_url": app.config["API_BASE_URL"]}, 200

    app.register_blueprint(pages_bp)
    app.register_blueprint(embed_bp)
    app.register_blueprint(builder_bp, url_prefix="/builder")
    app.register_blueprint(admin_bp)

    app.logger.info("url map: %s", sorted(str(rule) for rule in app.url_map.iter_rules()))
    return app
