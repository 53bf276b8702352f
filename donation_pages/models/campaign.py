from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from donation_pages.models.blocks import Block, blocks_from_document

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


def _num(v: Any, default: float = 0) -> float:
    try:
        return float(v) if v is not None else default
    except (TypeError, ValueError):
        return default


@dataclass
class LatestWinner:
    donor: str
    amount_cents: int
    created_at: str | None = None

    @classmethod
    def from_api(cls, data: Any) -> "LatestWinner | None":
        if not isinstance(data, dict) or not data.get("donor"):
            return None
        return cls(
            donor=str(data["donor"]),
            amount_cents=int(_num(data.get("amount_cents"))),
            created_at=data.get("created_at"),
        )


@dataclass
class Campaign:
    """Public projection of a campaign, read-only here."""

    id: str
    title: str | None = None
    goal: float = 0
    total_raised: float = 0
    slug: str | None = None
    donations_count: int | None = None
    giveaway_prize_cents: int | None = None
    latest_winner: LatestWinner | None = None
    page_layout: Any = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Campaign":
        prize = data.get("giveaway_prize_cents")
        count = data.get("donations_count")
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or None,
            goal=_num(data.get("goal")),
            total_raised=_num(data.get("total_raised")),
            slug=data.get("slug"),
            donations_count=int(count) if isinstance(count, int) else None,
            giveaway_prize_cents=int(prize) if isinstance(prize, int) else None,
            latest_winner=LatestWinner.from_api(data.get("latest_winner")),
            page_layout=data.get("page_layout"),
        )

    @property
    def blocks(self) -> list[Block]:
        return blocks_from_document(self.page_layout)

    @property
    def percent(self) -> float:
        if self.goal <= 0:
            return 0.0
        return min(100.0, self.total_raised / self.goal * 100.0)


@dataclass
class Progress:
    goal: float = 0
    total_raised: float = 0
    percent: float = 0
    donations_count: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Progress":
        count = data.get("donations_count")
        return cls(
            goal=_num(data.get("goal")),
            total_raised=_num(data.get("total_raised")),
            percent=_num(data.get("percent")),
            donations_count=int(count) if isinstance(count, int) else None,
        )


@dataclass
class MediaItem:
    id: str
    url: str | None = None
    type: str | None = None

    @classmethod
    def from_api(cls, data: Any) -> "MediaItem | None":
        if not isinstance(data, dict):
            return None
        url = data.get("url")
        return cls(
            id=str(data.get("id") or ""),
            url=url if isinstance(url, str) and url else None,
            type=data.get("type"),
        )


@dataclass
class Donation:
    id: str
    status: str
    amount_cents: int = 0
    currency: str = "usd"
    message: str | None = None
    campaign_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Donation":
        return cls(
            id=str(data.get("id") or ""),
            status=str(data.get("status") or "pending"),
            amount_cents=int(_num(data.get("amount_cents"))),
            currency=(data.get("currency") or "usd"),
            message=data.get("message") or None,
            campaign_id=data.get("campaign_id"),
            extra=dict(data),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def amount(self) -> float:
        return round(self.amount_cents / 100.0, 2)
