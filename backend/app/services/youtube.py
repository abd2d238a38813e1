"""YouTube Data API collaborator: channel resolution, catalog fetch, channel search."""

from __future__ import annotations

import logging
import re
from typing import Any

import requests

from .. import settings
from ..models import ChannelProfile, VideoRecord
from .errors import NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
YOUTUBE_VIDEOS_LIST = f"{YOUTUBE_API_BASE}/videos"
YOUTUBE_SEARCH_LIST = f"{YOUTUBE_API_BASE}/search"
YOUTUBE_CHANNELS_LIST = f"{YOUTUBE_API_BASE}/channels"
YOUTUBE_PLAYLIST_ITEMS_LIST = f"{YOUTUBE_API_BASE}/playlistItems"

SEARCH_MAX_RESULTS = 25
BATCH_SIZE = 50

CHANNEL_URL_RE = re.compile(
    r"youtube\.com/(?:@([\w.-]+)|channel/(UC[\w-]+)|c/([\w.-]+)|user/([\w.-]+))",
    flags=re.IGNORECASE,
)


def chunked(lst, n):
    for i in range(0, len(lst), n):
        yield lst[i:i + n]


def _require_api_key(stage: str) -> str:
    if not settings.YOUTUBE_API_KEY:
        raise UnavailableError("YouTube API key is not configured.", stage=stage)
    return settings.YOUTUBE_API_KEY


def is_quota_exceeded_response(status_code: int, body: str) -> bool:
    lowered = (body or "").lower()
    return status_code in {403, 429} and (
        "quotaexceeded" in lowered or "quota exceeded" in lowered or "youtube.quota" in lowered
    )


def youtube_api_get(url: str, params: dict[str, Any], stage: str = "youtube") -> dict[str, Any]:
    merged = params.copy()
    merged["key"] = _require_api_key(stage)
    try:
        response = requests.get(url, params=merged, timeout=settings.HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.warning("YouTube request to %s failed: %s", url, exc)
        raise UnavailableError("YouTube is temporarily unavailable. Please try again.", stage=stage)

    if response.status_code == 200:
        try:
            return response.json()
        except ValueError:
            raise UnavailableError("YouTube returned an unreadable response.", stage=stage)

    if is_quota_exceeded_response(response.status_code, response.text):
        raise UnavailableError("YouTube API quota is currently exhausted.", stage=stage)

    if response.status_code == 404:
        raise NotFoundError("Channel not found.", stage=stage)

    logger.warning("YouTube request to %s returned HTTP %s", url, response.status_code)
    raise UnavailableError("Could not fetch YouTube data right now.", stage=stage)


def best_thumbnail_url(thumbnails: dict, keys=("maxres", "high", "medium", "default")) -> str:
    for key in keys:
        t = thumbnails.get(key)
        if t and t.get("url"):
            return t["url"]
    return ""


def _int_stat(stats: dict, key: str) -> int:
    try:
        return int(stats.get(key, 0) or 0)
    except (TypeError, ValueError):
        return 0


def map_channel_item(item: dict[str, Any]) -> ChannelProfile:
    snippet = item.get("snippet") or {}
    stats = item.get("statistics") or {}
    return ChannelProfile(
        channel_id=item.get("id") or "",
        title=snippet.get("title") or "",
        description=snippet.get("description") or "",
        thumbnail=best_thumbnail_url(snippet.get("thumbnails") or {}, keys=("medium", "default")),
        subscriber_count=_int_stat(stats, "subscriberCount"),
        video_count=_int_stat(stats, "videoCount"),
        custom_url=snippet.get("customUrl"),
    )


def map_video_item(item: dict[str, Any]) -> VideoRecord:
    snippet = item.get("snippet") or {}
    stats = item.get("statistics") or {}
    details = item.get("contentDetails") or {}
    return VideoRecord(
        video_id=item.get("id") or "",
        title=snippet.get("title") or "",
        published_at=snippet.get("publishedAt") or "",
        view_count=_int_stat(stats, "viewCount"),
        like_count=_int_stat(stats, "likeCount") if "likeCount" in stats else None,
        comment_count=_int_stat(stats, "commentCount") if "commentCount" in stats else None,
        thumbnail=best_thumbnail_url(snippet.get("thumbnails") or {}),
        duration=details.get("duration"),
    )


def extract_channel_hint(query: str) -> tuple[str, str]:
    """
    Parse common channel input styles.
    Returns: (hint_type, hint_value)
    hint_type: channel_id | handle | query
    """
    raw = (query or "").strip()
    m = CHANNEL_URL_RE.search(raw)
    if m:
        if m.group(1):
            return "handle", m.group(1)
        if m.group(2):
            return "channel_id", m.group(2)
        return "query", m.group(3) or m.group(4)

    if raw.startswith("UC") and len(raw) == 24:
        return "channel_id", raw
    if raw.startswith("@"):
        return "handle", raw[1:].strip()
    return "query", raw


def _first_channel(params: dict[str, Any], stage: str) -> ChannelProfile:
    payload = youtube_api_get(YOUTUBE_CHANNELS_LIST, {"part": "snippet,statistics", **params}, stage=stage)
    items = payload.get("items") or []
    if not items:
        raise NotFoundError("Channel not found.", stage=stage)
    return map_channel_item(items[0])


def fetch_channel_by_id(channel_id: str, stage: str = "resolve") -> ChannelProfile:
    return _first_channel({"id": channel_id}, stage)


def fetch_channel_by_handle(handle: str, stage: str = "resolve") -> ChannelProfile:
    return _first_channel({"forHandle": handle.lstrip("@")}, stage)


def search_for_channel(query: str, stage: str = "resolve") -> ChannelProfile:
    payload = youtube_api_get(
        YOUTUBE_SEARCH_LIST,
        {"part": "snippet", "type": "channel", "q": query, "maxResults": 1},
        stage=stage,
    )
    items = payload.get("items") or []
    channel_id = ((items[0].get("snippet") or {}).get("channelId")) if items else None
    if not channel_id:
        raise NotFoundError("Channel not found.", stage=stage)
    return fetch_channel_by_id(channel_id, stage=stage)


def resolve_channel(query: str) -> ChannelProfile:
    hint_type, hint_value = extract_channel_hint(query)
    if not hint_value:
        raise NotFoundError("Channel not found.", stage="resolve")
    if hint_type == "channel_id":
        return fetch_channel_by_id(hint_value)
    if hint_type == "handle":
        return fetch_channel_by_handle(hint_value)

    # Free text: try it as a handle first, then fall back to search.
    try:
        return fetch_channel_by_handle(hint_value)
    except NotFoundError:
        return search_for_channel(hint_value)


def uploads_playlist_id(channel_id: str) -> str:
    return "UU" + channel_id[2:]


def hydrate_videos(video_ids: list[str], stage: str = "catalog") -> list[VideoRecord]:
    hydrated = []
    for batch in chunked(video_ids, BATCH_SIZE):
        payload = youtube_api_get(
            YOUTUBE_VIDEOS_LIST,
            {"part": "snippet,statistics,contentDetails", "id": ",".join(batch)},
            stage=stage,
        )
        hydrated.extend(map_video_item(item) for item in payload.get("items", []))
    return hydrated


def fetch_recent_videos(channel_id: str, max_count: int = 30) -> list[VideoRecord]:
    """Most recent uploads with statistics; an empty list when the channel has none."""
    try:
        payload = youtube_api_get(
            YOUTUBE_PLAYLIST_ITEMS_LIST,
            {
                "part": "contentDetails",
                "playlistId": uploads_playlist_id(channel_id),
                "maxResults": min(BATCH_SIZE, max_count),
            },
            stage="catalog",
        )
    except NotFoundError:
        return []

    video_ids = [
        vid
        for vid in ((it.get("contentDetails") or {}).get("videoId") for it in payload.get("items", []))
        if vid
    ]
    if not video_ids:
        return []
    return hydrate_videos(video_ids[:max_count])


def search_channels(keywords: list[str], max_results: int = 20) -> list[ChannelProfile]:
    query = " ".join(k.strip() for k in keywords if k and k.strip())
    if not query:
        return []
    payload = youtube_api_get(
        YOUTUBE_SEARCH_LIST,
        {
            "part": "snippet",
            "type": "channel",
            "q": query,
            "maxResults": min(max_results, SEARCH_MAX_RESULTS),
        },
        stage="peers",
    )
    channel_ids: list[str] = []
    for item in payload.get("items", []):
        channel_id = ((item.get("snippet") or {}).get("channelId")) or ((item.get("id") or {}).get("channelId"))
        if channel_id and channel_id not in channel_ids:
            channel_ids.append(channel_id)
    if not channel_ids:
        return []

    channels = []
    for group in chunked(channel_ids, BATCH_SIZE):
        details = youtube_api_get(
            YOUTUBE_CHANNELS_LIST,
            {"part": "snippet,statistics", "id": ",".join(group)},
            stage="peers",
        )
        channels.extend(map_channel_item(item) for item in details.get("items", []))
    return channels
