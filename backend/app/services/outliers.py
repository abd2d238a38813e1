from __future__ import annotations

import math
from statistics import median
from typing import Iterable, Sequence

from ..models import OutlierVideo, VideoRecord

DEFAULT_THRESHOLD = 3.0
MIN_SAMPLE_SIZE = 3


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to `digits` decimals with halves going up (3.25 -> 3.3)."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def median_view_count(videos: Sequence[VideoRecord]) -> float:
    if not videos:
        return 0.0
    return float(median(v.view_count for v in videos))


def detect_outliers(
    videos: Sequence[VideoRecord],
    channel_id: str,
    channel_title: str,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[OutlierVideo]:
    """
    Flag videos whose views are at least `threshold` times the channel median.

    Works on a single channel's sample; never pool several channels before
    calling this.
    """
    if len(videos) < MIN_SAMPLE_SIZE:
        return []
    baseline = median_view_count(videos)
    if baseline <= 0:
        return []

    flagged = []
    for video in videos:
        ratio = video.view_count / baseline
        if ratio < threshold:
            continue
        flagged.append(
            OutlierVideo(
                **video.model_dump(include=set(VideoRecord.model_fields)),
                multiplier=round_half_up(ratio),
                channel_id=channel_id,
                channel_title=channel_title,
            )
        )
    flagged.sort(key=lambda item: item.multiplier, reverse=True)
    return flagged


def rank_outliers(outlier_lists: Iterable[Sequence[OutlierVideo]], limit: int) -> list[OutlierVideo]:
    merged = [item for outliers in outlier_lists for item in outliers]
    merged.sort(key=lambda item: item.multiplier, reverse=True)
    return merged[:limit]
