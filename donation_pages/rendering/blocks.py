"""
Per-block HTML strategies.

Each strategy reads only its own typed props plus the campaign snapshot and
returns an HTML fragment. Strategies share no state.
"""

from __future__ import annotations
from datetime import datetime
from html import escape

from donation_pages.models.blocks import (
    CampaignInfoBlock,
    DonateButtonBlock,
    EmbedBlock,
    FooterBlock,
    HeroBlock,
    MediaGalleryBlock,
    ProgressTubeBlock,
    TextBlock,
    UnknownBlock,
)
from donation_pages.models.campaign import Campaign, MediaItem
from donation_pages.utils.embed import iframe_src

ORG_CREDIT = "Powered by Helping Hands"


def money(v: float) -> str:
    if float(v).is_integer():
        return f"{int(v):,}"
    return f"{v:,.2f}"


def _drawn_on(created_at: str | None) -> str:
    if not created_at:
        return ""
    try:
        return datetime.fromisoformat(created_at.replace("Z", "+00:00")).strftime("%b %d, %Y")
    except ValueError:
        return ""


def _progress_bar(percent: float) -> str:
    return (
        '<div class="donate-block-progress">'
        f'<div class="donate-block-progress-fill" style="width: {percent:.2f}%"></div>'
        "</div>"
    )


def _raised_of_goal(campaign: Campaign) -> str:
    return (
        f"<strong>${money(campaign.total_raised)}</strong> of "
        f"${money(campaign.goal)} goal"
    )


def render_hero(block: HeroBlock, campaign: Campaign) -> str:
    p = block.props
    title = p.title or campaign.title or "Campaign"
    style = f' style="background-color: {escape(p.background_color)}"' if p.background_color else ""
    parts = [f'<div class="donate-block donate-block-hero"{style}>']
    if p.image_url:
        parts.append(
            f'<div class="donate-block-hero-image"><img src="{escape(p.image_url)}" alt="" /></div>'
        )
    parts.append(f"<h1>{escape(title)}</h1>")
    if p.subtitle:
        parts.append(f"<p>{escape(p.subtitle)}</p>")
    parts.append("</div>")
    return "".join(parts)


def render_campaign_info(block: CampaignInfoBlock, campaign: Campaign) -> str:
    p = block.props
    parts = ['<div class="donate-block donate-block-campaign-info">']
    if p.show_goal:
        parts.append(f"<p>{_raised_of_goal(campaign)}</p>")
    if p.show_progress_bar and campaign.goal > 0:
        parts.append(_progress_bar(campaign.percent))
    if p.show_donations_count and campaign.donations_count is not None:
        n = campaign.donations_count
        parts.append(
            f'<p class="donate-block-donations-count">{n:,} donation{"" if n == 1 else "s"}</p>'
        )
    winner = campaign.latest_winner
    if p.show_winner and winner:
        drawn = _drawn_on(winner.created_at)
        parts.append(
            '<p class="donate-block-winner">'
            f"Congratulations to <strong>{escape(winner.donor)}</strong>, our giveaway winner!"
            + (f" <span>(Drawn {drawn})</span>" if drawn else "")
            + "</p>"
        )
    parts.append("</div>")
    return "".join(parts)


def render_donate_button(block: DonateButtonBlock) -> str:
    return (
        '<div class="donate-block donate-block-donate-button">'
        f'<a class="donate-block-donate-cta" href="#donate" role="button" data-action="donate">'
        f"{escape(block.props.label)}</a></div>"
    )


def render_media_gallery(block: MediaGalleryBlock, media: list[MediaItem] | None) -> str:
    items = [m for m in (media or []) if m.url]
    if not items:
        return (
            '<div class="donate-block donate-block-media-gallery">'
            '<p class="donate-block-media-empty">No media yet.</p></div>'
        )
    cells = "".join(
        f'<div class="donate-block-media-item"><img src="{escape(m.url)}" alt="" /></div>'
        for m in items
    )
    return (
        f'<div class="donate-block donate-block-media-gallery donate-block-media-{block.props.aspect_ratio}"'
        f' style="--media-cols: {block.props.columns}">'
        f'<div class="donate-block-media-grid">{cells}</div></div>'
    )


def render_text(block: TextBlock) -> str:
    content = escape(block.props.content).replace("\n", "<br />")
    return (
        f'<div class="donate-block donate-block-text donate-block-text-{block.props.align}">'
        f"{content}</div>"
    )


def render_embed(block: EmbedBlock) -> str:
    src = iframe_src(block.props.url)
    if not src:
        return (
            '<div class="donate-block donate-block-embed">'
            "<p>No embed URL configured.</p></div>"
        )
    return (
        '<div class="donate-block donate-block-embed">'
        f'<iframe src="{escape(src)}" title="Embed" width="100%" height="{block.props.height}"'
        ' frameborder="0" allowfullscreen></iframe></div>'
    )


def render_footer(block: FooterBlock) -> str:
    p = block.props
    text = escape(p.text)
    if text and p.show_org_name:
        text += " · "
    if p.show_org_name:
        text += ORG_CREDIT
    return f'<div class="donate-block donate-block-footer"><p>{text}</p></div>'


def render_progress_tube(block: ProgressTubeBlock, campaign: Campaign) -> str:
    p = block.props
    parts = ['<div class="donate-block donate-block-progress-tube">']
    if p.label:
        parts.append(f'<p class="donate-block-progress-label">{escape(p.label)}</p>')
    percent = ""
    if p.show_percent:
        percent = f' <span class="donate-block-progress-percent">({round(campaign.percent)}%)</span>'
    parts.append(f"<p>{_raised_of_goal(campaign)}{percent}</p>")
    parts.append(_progress_bar(campaign.percent))
    parts.append("</div>")
    return "".join(parts)


def render_unknown(block: UnknownBlock) -> str:
    t = escape(block.type)
    return (
        f'<div class="donate-block donate-block-unknown" data-block-type="{t}">'
        f"[Unknown block: {t}]</div>"
    )
