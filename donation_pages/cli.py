#!/usr/bin/env python3
"""
Command line for campaign pages.

Usage:
  donation-pages login --email owner@example.com
  donation-pages validate layout.json
  donation-pages push-layout <campaign_id> layout.json
  donation-pages render <campaign_id> -o page.html
  donation-pages donate <campaign_id> --amount 25 --payment-method pm_card_visa
  donation-pages status <donation_id>

Reads the same environment as the web app (API_BASE_URL, REDIS_URL,
STRIPE_PUBLISHABLE_KEY, ...).
"""
import argparse
import getpass
import json
import logging
import os
import sys

from dotenv import load_dotenv

from donation_pages.models.blocks import (
    blocks_from_document,
    resolve_layout,
    resolve_preset_amounts,
)
from donation_pages.rendering import pages, render
from donation_pages.services.campaign_service import (
    get_public_campaign,
    list_media,
    save_page_layout,
)
from donation_pages.services.checkout_service import CheckoutOrchestrator, CheckoutState
from donation_pages.services.gateway import API_BASE_URL, ApiClient
from donation_pages.services.payments import build_confirmer
from donation_pages.services.status_poller import PollOutcome, poll_donation_status
from donation_pages.utils.errors import (
    ApiError,
    PaymentNotConfiguredError,
    SessionExpiredError,
    get_error_message,
)
from donation_pages.utils.page_layout import validate_layout
from donation_pages.utils.session_store import CredentialStore


def _read_layout(path: str):
    with open(path, encoding="utf-8") as fh:
        doc = json.load(fh)
    return doc.get("blocks") if isinstance(doc, dict) else doc


def cmd_login(api: ApiClient, args) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = api.login(args.email, password)
    print(f"OK signed in as {user.get('email')}")
    return 0


def cmd_logout(api: ApiClient, args) -> int:
    api.logout()
    print("OK signed out")
    return 0


def cmd_validate(api: ApiClient, args) -> int:
    ok, err = validate_layout(_read_layout(args.file))
    if not ok:
        print(f"FAIL {err}")
        return 1
    print("OK layout is valid")
    return 0


def cmd_push_layout(api: ApiClient, args) -> int:
    candidate = _read_layout(args.file)
    ok, err = validate_layout(candidate)
    if not ok:
        print(f"FAIL {err}")
        return 1
    saved = save_page_layout(api, args.campaign_id, blocks_from_document(candidate))
    print(f"OK saved {len(saved)} blocks")
    return 0


def cmd_render(api: ApiClient, args) -> int:
    campaign = get_public_campaign(api, args.campaign_id)
    nodes = render(
        resolve_layout(campaign),
        campaign,
        on_donate_click=lambda: None,
        media_loader=lambda cid: list_media(api, cid),
    )
    html = pages.donate_page(campaign.title or "Campaign", nodes, "")
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(html)
        print(f"OK wrote {args.output} ({len(nodes)} blocks)")
    else:
        print(html)
    return 0


def _print_poll(handle) -> int:
    if handle.outcome is PollOutcome.SUCCEEDED:
        d = handle.donation
        print(f"OK donation {d.id} succeeded: {d.currency.upper()} {d.amount:.2f}")
        return 0
    if handle.outcome is PollOutcome.TIMEOUT:
        print(f"PENDING donation {handle.donation_id} still processing after {handle.attempts} checks")
        return 2
    print(f"FAIL {handle.error or handle.outcome.value}")
    return 1


def cmd_donate(api: ApiClient, args) -> int:
    campaign = get_public_campaign(api, args.campaign_id)
    orch = CheckoutOrchestrator(
        api,
        campaign.id or args.campaign_id,
        build_confirmer(),
        return_base_url=args.return_base,
        preset_amounts=resolve_preset_amounts(resolve_layout(campaign)),
    )
    orch.set_custom_amount(args.amount)
    orch.donor_email = args.email or ""
    orch.message = args.message or ""

    session = orch.submit()
    if session is None:
        print(f"FAIL {orch.error}")
        return 1
    print(f"OK checkout session donation_id={session.donation_id} amount={session.amount:.2f}")
    if not args.payment_method:
        print(f"   confirm in a browser, then run: donation-pages status {session.donation_id}")
        return 0

    result = orch.confirm(args.payment_method)
    if orch.state is CheckoutState.FAILED:
        print(f"FAIL {orch.error}")
        return 1
    if result.redirect_url:
        print(f"   payer action required: {result.redirect_url}")
        print(f"   afterwards run: donation-pages status {session.donation_id}")
        return 0
    return _print_poll(poll_donation_status(api, session.donation_id))


def cmd_status(api: ApiClient, args) -> int:
    kwargs = {}
    if args.interval is not None:
        kwargs["interval"] = args.interval
    if args.attempts is not None:
        kwargs["max_attempts"] = args.attempts
    return _print_poll(poll_donation_status(api, args.donation_id, **kwargs))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="donation-pages")
    ap.add_argument("--base", default=None, help="Backend URL (default: API_BASE_URL)")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="sign in and store credentials")
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("logout", help="forget stored credentials")
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser("validate", help="check a layout JSON file")
    p.add_argument("file")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("push-layout", help="validate and save a campaign layout")
    p.add_argument("campaign_id")
    p.add_argument("file")
    p.set_defaults(func=cmd_push_layout)

    p = sub.add_parser("render", help="render a campaign donation page to HTML")
    p.add_argument("campaign_id")
    p.add_argument("-o", "--output")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("donate", help="start (and optionally confirm) a donation")
    p.add_argument("campaign_id")
    p.add_argument("--amount", required=True)
    p.add_argument("--email")
    p.add_argument("--message")
    p.add_argument("--payment-method", help="processor payment method id, e.g. pm_card_visa")
    p.add_argument(
        "--return-base",
        default=os.getenv("PUBLIC_BASE_URL") or "http://127.0.0.1:5173",
        help="origin for the thank-you return URL",
    )
    p.set_defaults(func=cmd_donate)

    p = sub.add_parser("status", help="poll a donation until it settles")
    p.add_argument("donation_id")
    p.add_argument("--interval", type=float)
    p.add_argument("--attempts", type=int)
    p.set_defaults(func=cmd_status)
    return ap


def main(argv=None, api: ApiClient | None = None) -> int:
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
    args = build_parser().parse_args(argv)
    if api is None:
        # the terminal keeps its own sign-in under the bare key prefix
        api = ApiClient(args.base or API_BASE_URL, CredentialStore())
    try:
        return args.func(api, args)
    except SessionExpiredError:
        print("FAIL session expired, run: donation-pages login --email <you>")
        return 1
    except PaymentNotConfiguredError as e:
        print(f"FAIL {e}")
        return 1
    except ApiError as e:
        print(f"FAIL {get_error_message(e)}")
        return 1
    except (OSError, ValueError) as e:
        print(f"FAIL {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
