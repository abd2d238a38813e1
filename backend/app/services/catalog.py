from __future__ import annotations

import calendar
import re
from datetime import datetime, timezone
from typing import Iterable

from ..models import VideoRecord

MIN_DURATION_SECONDS = 60
RECENCY_MONTHS = 12

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def iso8601_duration_to_seconds(duration: str | None) -> int:
    match = DURATION_RE.match(duration or "")
    if not match:
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    seconds = int(match.group(3) or 0)
    return hours * 3600 + minutes * 60 + seconds


def parse_iso8601_datetime(value: str | None):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def months_before(moment: datetime, months: int) -> datetime:
    total = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _excluded_by_duration(video: VideoRecord) -> bool:
    seconds = iso8601_duration_to_seconds(video.duration)
    if seconds == 0:
        # Missing or unparseable durations never exclude a video.
        return False
    return seconds < MIN_DURATION_SECONDS


def normalize_catalog(videos: Iterable[VideoRecord], now: datetime | None = None) -> list[VideoRecord]:
    """Keep long-form videos published within the last twelve months, in input order."""
    now = now or datetime.now(timezone.utc)
    cutoff = months_before(now, RECENCY_MONTHS)
    eligible = []
    for video in videos:
        if _excluded_by_duration(video):
            continue
        published_at = parse_iso8601_datetime(video.published_at)
        if published_at is not None and published_at < cutoff:
            continue
        eligible.append(video)
    return eligible
