"""
Page blocks.

`Block` is the persisted form: an id, a type tag and an open props map, kept
as-is so layouts saved by newer builders survive a round trip. Rendering works
on typed views (`typed_block`) whose props are read defensively with defaults.
"""

from __future__ import annotations
import math
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar

DEFAULT_PRESET_AMOUNTS = (5, 10, 25, 50, 100)


@dataclass
class Block:
    id: str
    type: str
    props: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Block":
        props = raw.get("props")
        return cls(
            id=str(raw.get("id") or ""),
            type=str(raw.get("type") or ""),
            props=dict(props) if isinstance(props, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "props": dict(self.props)}


def _is_number(x: Any) -> bool:
    return (
        isinstance(x, (int, float))
        and not isinstance(x, bool)
        and math.isfinite(x)
    )


def _str(p: dict, key: str, default: str | None = "") -> str | None:
    v = p.get(key)
    return v if isinstance(v, str) and v else default


def _clamp(v: Any, lo: int, hi: int, default: int) -> int:
    if not _is_number(v) or not v:
        v = default
    return int(min(hi, max(lo, v)))


def positive_amounts(raw: Any) -> list[int | float]:
    if not isinstance(raw, list):
        return []
    return [x for x in raw if _is_number(x) and x > 0]


# --- typed props ---------------------------------------------------------


@dataclass(frozen=True)
class HeroProps:
    title: str | None = None
    subtitle: str = ""
    image_url: str | None = None
    background_color: str | None = None

    @classmethod
    def from_props(cls, p: dict) -> "HeroProps":
        return cls(
            title=_str(p, "title", None),
            subtitle=_str(p, "subtitle"),
            image_url=_str(p, "image_url", None),
            background_color=_str(p, "background_color", None),
        )


@dataclass(frozen=True)
class CampaignInfoProps:
    show_goal: bool = True
    show_progress_bar: bool = True
    show_donations_count: bool = True
    show_winner: bool = False

    @classmethod
    def from_props(cls, p: dict) -> "CampaignInfoProps":
        # goal/progress/count are opt-out, the winner banner is opt-in
        return cls(
            show_goal=p.get("show_goal") is not False,
            show_progress_bar=p.get("show_progress_bar") is not False,
            show_donations_count=p.get("show_donations_count") is not False,
            show_winner=p.get("show_winner") is True,
        )


@dataclass(frozen=True)
class DonateButtonProps:
    label: str = "Donate"
    preset_amounts: tuple = DEFAULT_PRESET_AMOUNTS
    min_amount: float | None = None

    @classmethod
    def from_props(cls, p: dict) -> "DonateButtonProps":
        presets = positive_amounts(p.get("preset_amounts"))
        m = p.get("min_amount")
        return cls(
            label=_str(p, "label", "Donate"),
            preset_amounts=tuple(presets) or DEFAULT_PRESET_AMOUNTS,
            min_amount=m if _is_number(m) and m >= 0 else None,
        )


@dataclass(frozen=True)
class MediaGalleryProps:
    columns: int = 2
    aspect_ratio: str = "auto"

    @classmethod
    def from_props(cls, p: dict) -> "MediaGalleryProps":
        ar = p.get("aspect_ratio")
        return cls(
            columns=_clamp(p.get("columns"), 1, 4, 2),
            aspect_ratio=ar if ar in ("square", "landscape", "portrait") else "auto",
        )


@dataclass(frozen=True)
class TextProps:
    content: str = ""
    align: str = "left"

    @classmethod
    def from_props(cls, p: dict) -> "TextProps":
        align = p.get("align")
        return cls(
            content=_str(p, "content"),
            align=align if align in ("left", "center", "right") else "left",
        )


@dataclass(frozen=True)
class EmbedProps:
    url: str = ""
    height: int = 400

    @classmethod
    def from_props(cls, p: dict) -> "EmbedProps":
        return cls(url=_str(p, "url"), height=_clamp(p.get("height"), 100, 1000, 400))


@dataclass(frozen=True)
class FooterProps:
    text: str = ""
    show_org_name: bool = False

    @classmethod
    def from_props(cls, p: dict) -> "FooterProps":
        return cls(text=_str(p, "text"), show_org_name=p.get("show_org_name") is True)


@dataclass(frozen=True)
class ProgressTubeProps:
    label: str | None = None
    show_percent: bool = False

    @classmethod
    def from_props(cls, p: dict) -> "ProgressTubeProps":
        return cls(
            label=_str(p, "label", None), show_percent=p.get("show_percent") is True
        )


# --- typed blocks --------------------------------------------------------


@dataclass(frozen=True)
class HeroBlock:
    id: str
    props: HeroProps
    type: ClassVar[str] = "hero"


@dataclass(frozen=True)
class CampaignInfoBlock:
    id: str
    props: CampaignInfoProps
    type: ClassVar[str] = "campaign_info"


@dataclass(frozen=True)
class DonateButtonBlock:
    id: str
    props: DonateButtonProps
    type: ClassVar[str] = "donate_button"


@dataclass(frozen=True)
class MediaGalleryBlock:
    id: str
    props: MediaGalleryProps
    type: ClassVar[str] = "media_gallery"


@dataclass(frozen=True)
class TextBlock:
    id: str
    props: TextProps
    type: ClassVar[str] = "text"


@dataclass(frozen=True)
class EmbedBlock:
    id: str
    props: EmbedProps
    type: ClassVar[str] = "embed"


@dataclass(frozen=True)
class FooterBlock:
    id: str
    props: FooterProps
    type: ClassVar[str] = "footer"


@dataclass(frozen=True)
class ProgressTubeBlock:
    id: str
    props: ProgressTubeProps
    type: ClassVar[str] = "progress_tube"


@dataclass(frozen=True)
class UnknownBlock:
    """A block whose type this version does not know how to render."""

    id: str
    type: str
    props: dict = field(default_factory=dict)


_TYPED = {
    HeroBlock.type: (HeroBlock, HeroProps),
    CampaignInfoBlock.type: (CampaignInfoBlock, CampaignInfoProps),
    DonateButtonBlock.type: (DonateButtonBlock, DonateButtonProps),
    MediaGalleryBlock.type: (MediaGalleryBlock, MediaGalleryProps),
    TextBlock.type: (TextBlock, TextProps),
    EmbedBlock.type: (EmbedBlock, EmbedProps),
    FooterBlock.type: (FooterBlock, FooterProps),
    ProgressTubeBlock.type: (ProgressTubeBlock, ProgressTubeProps),
}


def typed_block(block: Block):
    entry = _TYPED.get(block.type)
    if entry is None:
        return UnknownBlock(id=block.id, type=block.type, props=dict(block.props))
    block_cls, props_cls = entry
    return block_cls(id=block.id, props=props_cls.from_props(block.props))


# --- layout documents ----------------------------------------------------


def blocks_from_document(doc: Any) -> list[Block]:
    """
    Read a stored layout. Accepts a bare block array or {"blocks": [...]};
    entries that are not objects are dropped.
    """
    if isinstance(doc, dict):
        doc = doc.get("blocks")
    if not isinstance(doc, list):
        return []
    return [Block.from_dict(b) for b in doc if isinstance(b, dict)]


def layout_document(blocks: list[Block]) -> dict[str, Any]:
    return {"blocks": [b.to_dict() for b in blocks]}


def synthesize_default(campaign) -> list[Block]:
    """Fallback layout for a campaign whose owner has not built a page yet."""
    return [
        Block(
            id="hero-1",
            type="hero",
            props={
                "title": getattr(campaign, "title", None) or "Campaign",
                "subtitle": "Thank you for your support.",
            },
        ),
        Block(
            id="info-1",
            type="campaign_info",
            props={
                "show_goal": True,
                "show_progress_bar": True,
                "show_donations_count": True,
                "show_winner": True,
            },
        ),
        Block(
            id="donate-1",
            type="donate_button",
            props={"preset_amounts": list(DEFAULT_PRESET_AMOUNTS), "label": "Donate"},
        ),
        Block(id="footer-1", type="footer", props={"show_org_name": True}),
    ]


def resolve_layout(campaign) -> list[Block]:
    return list(campaign.blocks) or synthesize_default(campaign)


def resolve_preset_amounts(blocks: list[Block]) -> list[int | float]:
    for block in blocks:
        if block.type == "donate_button":
            return positive_amounts(block.props.get("preset_amounts")) or list(
                DEFAULT_PRESET_AMOUNTS
            )
    return list(DEFAULT_PRESET_AMOUNTS)


# --- builder edits -------------------------------------------------------


def new_block_id(existing: list[Block], now_ms: int | None = None) -> str:
    taken = {b.id for b in existing}
    n = int(time.time() * 1000) if now_ms is None else now_ms
    while f"block-{n}" in taken:
        n += 1
    return f"block-{n}"


def add_block(blocks: list[Block], block_type: str, now_ms: int | None = None) -> list[Block]:
    return [*blocks, Block(id=new_block_id(blocks, now_ms), type=block_type)]


def _index_of(blocks: list[Block], block_id: str) -> int:
    for i, b in enumerate(blocks):
        if b.id == block_id:
            return i
    raise KeyError(block_id)


def patch_block_props(
    blocks: list[Block], block_id: str, key: str, value: Any
) -> list[Block]:
    i = _index_of(blocks, block_id)
    b = blocks[i]
    patched = Block(id=b.id, type=b.type, props={**b.props, key: value})
    return [*blocks[:i], patched, *blocks[i + 1 :]]


def remove_block(blocks: list[Block], block_id: str) -> list[Block]:
    i = _index_of(blocks, block_id)
    return [*blocks[:i], *blocks[i + 1 :]]
