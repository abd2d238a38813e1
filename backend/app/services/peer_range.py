from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..models import PeerBand


# (exclusive upper breakpoint, band). The last entry catches everything else.
PEER_BANDS: list[tuple[int | None, PeerBand]] = [
    (100, PeerBand(min=100, max=1_000)),
    (500, PeerBand(min=500, max=5_000)),
    (1_000, PeerBand(min=1_000, max=10_000)),
    (5_000, PeerBand(min=5_000, max=25_000)),
    (10_000, PeerBand(min=10_000, max=50_000)),
    (50_000, PeerBand(min=50_000, max=200_000)),
    (100_000, PeerBand(min=100_000, max=500_000)),
    (500_000, PeerBand(min=500_000, max=2_000_000)),
    (None, PeerBand(min=1_000_000, max=10_000_000)),
]


def select_peer_band(subscriber_count: int) -> PeerBand:
    """Map a subscriber count to the peer band one tier ahead of it."""
    count = max(0, int(subscriber_count or 0))
    for breakpoint, band in PEER_BANDS:
        if breakpoint is None or count < breakpoint:
            return band
    return PEER_BANDS[-1][1]


def _compact(value: float) -> str:
    text = str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def format_subscribers(n: int) -> str:
    if n >= 1_000_000:
        return f"{_compact(n / 1_000_000)}M"
    if n >= 1_000:
        return f"{_compact(n / 1_000)}K"
    return str(n)
