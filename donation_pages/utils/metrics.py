from prometheus_client import Counter

CHECKOUT_SESSIONS = Counter(
    "donation_pages_checkout_sessions_total",
    "Checkout session creation attempts",
    ["outcome"],
)
CREDENTIAL_REFRESHES = Counter(
    "donation_pages_credential_refreshes_total",
    "Access token refresh calls",
    ["outcome"],
)
STATUS_POLLS = Counter(
    "donation_pages_status_polls_total",
    "Finished donation status polling runs",
    ["outcome"],
)
UNKNOWN_BLOCKS = Counter(
    "donation_pages_unknown_blocks_total",
    "Blocks rendered as placeholders because their type is unknown",
)
