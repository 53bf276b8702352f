"""
Block rendering dispatcher.

Maps every typed block to its strategy. Unknown types, and any block whose
strategy fails, render as a visible placeholder so one bad block never takes
the page down. Media for gallery blocks is fetched in the background while
the other blocks render; a slow or failing fetch degrades to the gallery's
empty state.
"""

from __future__ import annotations
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from donation_pages.models.blocks import (
    Block,
    CampaignInfoBlock,
    DonateButtonBlock,
    EmbedBlock,
    FooterBlock,
    HeroBlock,
    MediaGalleryBlock,
    ProgressTubeBlock,
    TextBlock,
    UnknownBlock,
    typed_block,
)
from donation_pages.models.campaign import Campaign, MediaItem
from donation_pages.rendering import blocks as strategies
from donation_pages.utils.metrics import UNKNOWN_BLOCKS

logger = logging.getLogger(__name__)

MEDIA_FETCH_TIMEOUT = float(os.getenv("MEDIA_FETCH_TIMEOUT", "3"))

_media_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="media")


@dataclass
class RenderedBlock:
    block_id: str
    block_type: str
    html: str
    on_activate: Callable[[], None] | None = None
    placeholder: bool = False

    def activate(self) -> None:
        if self.on_activate is not None:
            self.on_activate()


class _Context:
    def __init__(self, campaign, on_donate_click, media: Future | None, media_timeout):
        self.campaign = campaign
        self.on_donate_click = on_donate_click
        self._media = media
        self._media_timeout = media_timeout
        self._media_lock = threading.Lock()
        self._media_resolved = False
        self._media_items: list[MediaItem] | None = None

    def media(self) -> list[MediaItem] | None:
        """
        The fetched media, waited for once per render. Every gallery after
        the first reuses that answer, including a timeout.
        """
        if self._media is None:
            return None
        with self._media_lock:
            if not self._media_resolved:
                self._media_resolved = True
                try:
                    self._media_items = self._media.result(timeout=self._media_timeout)
                except Exception as e:
                    logger.warning(
                        "[render] media unavailable for campaign=%s: %r", self.campaign.id, e
                    )
            return self._media_items


_STRATEGIES = {
    HeroBlock: lambda b, ctx: strategies.render_hero(b, ctx.campaign),
    CampaignInfoBlock: lambda b, ctx: strategies.render_campaign_info(b, ctx.campaign),
    DonateButtonBlock: lambda b, ctx: strategies.render_donate_button(b),
    MediaGalleryBlock: lambda b, ctx: strategies.render_media_gallery(b, ctx.media()),
    TextBlock: lambda b, ctx: strategies.render_text(b),
    EmbedBlock: lambda b, ctx: strategies.render_embed(b),
    FooterBlock: lambda b, ctx: strategies.render_footer(b),
    ProgressTubeBlock: lambda b, ctx: strategies.render_progress_tube(b, ctx.campaign),
}


def _placeholder(block_id: str, block_type: str) -> RenderedBlock:
    UNKNOWN_BLOCKS.inc()
    return RenderedBlock(
        block_id=block_id,
        block_type=block_type,
        html=strategies.render_unknown(UnknownBlock(id=block_id, type=block_type)),
        placeholder=True,
    )


def _render_one(block, ctx: _Context) -> RenderedBlock:
    strategy = _STRATEGIES.get(type(block))
    if strategy is None:
        return _placeholder(block.id, block.type)
    try:
        html = strategy(block, ctx)
    except Exception:
        logger.exception("[render] %s block %r failed", block.type, block.id)
        return _placeholder(block.id, block.type)
    on_activate = ctx.on_donate_click if isinstance(block, DonateButtonBlock) else None
    return RenderedBlock(block.id, block.type, html, on_activate=on_activate)


def render(
    blocks: list[Block],
    campaign: Campaign,
    on_donate_click: Callable[[], None],
    *,
    media_loader: Callable[[str], list[MediaItem]] | None = None,
    media_timeout: float = MEDIA_FETCH_TIMEOUT,
) -> list[RenderedBlock]:
    typed = [typed_block(b) for b in blocks]
    media = None
    if media_loader is not None and any(isinstance(t, MediaGalleryBlock) for t in typed):
        media = _media_pool.submit(media_loader, campaign.id)
    ctx = _Context(campaign, on_donate_click, media, media_timeout)

    # galleries last so the fetch overlaps everything else
    out: list[RenderedBlock | None] = [None] * len(typed)
    order = sorted(range(len(typed)), key=lambda i: isinstance(typed[i], MediaGalleryBlock))
    for i in order:
        out[i] = _render_one(typed[i], ctx)
    return out
