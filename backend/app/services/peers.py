from __future__ import annotations

from typing import Callable, Sequence

from ..models import ChannelProfile, PeerBand
from . import youtube

MIN_PEER_VIDEOS = 3

ChannelSearch = Callable[[list[str], int], list[ChannelProfile]]


def filter_peer_candidates(candidates: Sequence[ChannelProfile], band: PeerBand) -> list[ChannelProfile]:
    return [
        channel
        for channel in candidates
        if band.contains(channel.subscriber_count) and channel.video_count >= MIN_PEER_VIDEOS
    ]


def discover_peers(
    niche_keywords: list[str],
    band: PeerBand,
    limit: int,
    search: ChannelSearch | None = None,
) -> list[ChannelProfile]:
    """
    Search channels for the niche and keep those inside the peer band.

    Channels with fewer than three videos are dropped since they cannot
    produce a median worth comparing against. Excluding the source channel
    and capping the peer count is left to the caller.
    """
    search = search or youtube.search_channels
    candidates = search(list(niche_keywords), limit)
    return filter_peer_candidates(candidates, band)


def exclude_channel(peers: Sequence[ChannelProfile], channel_id: str) -> list[ChannelProfile]:
    return [peer for peer in peers if peer.channel_id != channel_id]
