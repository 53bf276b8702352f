"""
Campaign page layout rules.

Block types the donation page builder may save, and the check a candidate
block list must pass before it is sent to the backend. The decision must
match the backend's page layout validation: a layout accepted here is
persisted as-is.

Layout format: [ { "id": "...", "type": "...", "props": {...} }, ... ]
"""

import re
from typing import Any

BLOCK_TYPES = frozenset(
    {
        "hero",
        "campaign_info",
        "donate_button",
        "media_gallery",
        "text",
        "embed",
        "footer",
        "progress_tube",
    }
)

MAX_BLOCKS = 50

MAX_ID_LEN = 100

_ALNUM = re.compile(r"[A-Za-z0-9]+")

# Prop schema served to builders; props are never required
BLOCK_SCHEMA = {
    "hero": {
        "props": {
            "title": "string",
            "subtitle": "string",
            "image_url": "string",
            "background_color": "string",
        },
    },
    "campaign_info": {
        "props": {
            "show_goal": "boolean",
            "show_progress_bar": "boolean",
            "show_donations_count": "boolean",
            "show_winner": "boolean",
        },
    },
    "donate_button": {
        "props": {
            "preset_amounts": "number[]",
            "label": "string",
            "min_amount": "number",
        },
    },
    "media_gallery": {
        "props": {"columns": "1-4", "aspect_ratio": "square|landscape|portrait|auto"},
    },
    "text": {
        "props": {"content": "string", "align": "left|center|right"},
    },
    "embed": {
        "props": {"url": "string", "height": "100-1000"},
    },
    "footer": {
        "props": {"text": "string", "show_org_name": "boolean"},
    },
    "progress_tube": {
        "props": {"label": "string", "show_percent": "boolean"},
    },
}


def valid_block_id(s: Any) -> bool:
    if not isinstance(s, str) or not 0 < len(s) <= MAX_ID_LEN:
        return False
    return bool(_ALNUM.fullmatch(s.replace("-", "").replace("_", "")))


def validate_layout(blocks: Any) -> tuple[bool, str | None]:
    """
    Validate a candidate block list. Returns (valid, error_message).

    Stops at the first offending block. Checks per block, in order: it is an
    object, its id is well formed, its id is unused so far, its type is known,
    and its props (when present) are an object.
    """
    if not isinstance(blocks, list):
        return False, "Layout must be an array of blocks"
    if len(blocks) > MAX_BLOCKS:
        return False, f"At most {MAX_BLOCKS} blocks allowed"
    seen_ids = set()
    for i, block in enumerate(blocks):
        if not isinstance(block, dict):
            return False, f"Block {i} must be an object"
        bid = block.get("id")
        if not valid_block_id(bid):
            return False, f"Block {i}: id required and must be alphanumeric with - or _"
        if bid in seen_ids:
            return False, f"Block {i}: duplicate id '{bid}'"
        seen_ids.add(bid)
        btype = block.get("type")
        if not isinstance(btype, str) or btype not in BLOCK_TYPES:
            return False, f"Block {i}: type must be one of {', '.join(sorted(BLOCK_TYPES))}"
        props = block.get("props")
        if props is not None and not isinstance(props, dict):
            return False, f"Block {i}: props must be an object"
    return True, None
