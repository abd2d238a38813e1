"""Niche extraction and idea synthesis on top of the generation providers.

Model output is untrusted: every idea must cite videos from the working
set it was shown, so cited indices are validated, de-duplicated per
channel, and backfilled from the working set when nothing usable remains.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from .. import settings
from ..models import ChannelProfile, EvidenceVideo, OutlierVideo, VideoIdea
from . import llm
from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

IDEA_COUNT = 5
MAX_EVIDENCE = 3
MAX_NICHE_KEYWORDS = 5
NICHE_TITLE_SAMPLE = 15
DESCRIPTION_PREVIEW_CHARS = 500

CODE_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```", flags=re.IGNORECASE)
QUOTED_RE = re.compile(r'"([^"]+)"')

Generate = Callable[[str], str]


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_RE.sub("", text or "").strip()


def parse_json_payload(text: str, stage: str = "generation") -> Any:
    try:
        return json.loads(strip_code_fences(text))
    except (TypeError, ValueError):
        raise MalformedResponseError("The AI response could not be parsed.", stage=stage)


# ---------------------------
# Niche keywords
# ---------------------------

def build_niche_prompt(channel: ChannelProfile, video_titles: Sequence[str]) -> str:
    description = (channel.description or "")[:DESCRIPTION_PREVIEW_CHARS] or "N/A"
    titles = "\n".join(f"- {title}" for title in list(video_titles)[:NICHE_TITLE_SAMPLE])
    return (
        "Analyze this YouTube channel and extract 3-5 niche keywords that describe what topics "
        "they cover. These keywords will be used to search for similar channels.\n\n"
        f"Channel: {channel.title}\n"
        f"Description: {description}\n"
        f"Recent video titles:\n{titles}\n\n"
        "Return ONLY a JSON array of 3-5 keyword strings. "
        'Example: ["productivity", "time management", "self improvement"]\n'
        "No explanation, just the JSON array."
    )


def _clean_keywords(values: Sequence[Any]) -> list[str]:
    keywords = []
    for value in values:
        if not isinstance(value, str):
            continue
        keyword = value.strip()
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:MAX_NICHE_KEYWORDS]


def parse_niche_keywords(text: str, fallback: str) -> list[str]:
    try:
        parsed = parse_json_payload(text, stage="niche")
    except MalformedResponseError:
        parsed = None

    if isinstance(parsed, list):
        keywords = _clean_keywords(parsed)
    else:
        keywords = _clean_keywords(QUOTED_RE.findall(text or ""))
    return keywords or [fallback]


def extract_niche(
    channel: ChannelProfile,
    video_titles: Sequence[str],
    generate: Generate | None = None,
) -> list[str]:
    generate = generate or (lambda prompt: llm.generate_text(prompt, stage="niche"))
    text = generate(build_niche_prompt(channel, video_titles))
    return parse_niche_keywords(text, fallback=channel.title)


# ---------------------------
# Ideas
# ---------------------------

def build_idea_prompt(
    channel: ChannelProfile,
    niche: Sequence[str],
    working_set: Sequence[OutlierVideo],
    recent_titles: Sequence[str] | None = None,
    year: int | None = None,
) -> str:
    year = year or datetime.now(timezone.utc).year
    outlier_summary = "\n".join(
        f'[{i}] "{v.title}" by {v.channel_title} ({v.view_count:,} views, {v.multiplier}x their median)'
        for i, v in enumerate(working_set)
    )
    recent_block = ""
    if recent_titles:
        listed = "\n".join(f"- {title}" for title in list(recent_titles)[:NICHE_TITLE_SAMPLE])
        recent_block = (
            "\nTheir recent videos (do not just repeat these):\n"
            f"{listed}\n"
        )

    return f"""You are a YouTube strategist. A creator in the "{", ".join(niche)}" niche wants video ideas based on what's working for channels one step ahead of them.

Their channel: {channel.title} ({channel.subscriber_count:,} subscribers)
{recent_block}
These are outlier videos (videos that got {settings.OUTLIER_THRESHOLD:g}x+ their channel's median views) from similar but slightly larger channels. Each has a number in brackets:

{outlier_summary}

Generate exactly {IDEA_COUNT} video ideas for this creator. Each idea should:
1. Be inspired by what's working (the outlier patterns) but adapted for their audience size and style
2. Have a compelling, specific title (not generic). If the title mentions a year, use {year}, never an earlier year
3. Include a 1-2 sentence insight explaining WHY this topic works and how to approach it
4. Reference 1-3 evidence videos using their bracket numbers. Videos cited by one idea MUST come from different channels. Spread the evidence across the full list instead of reusing the same videos.

Return ONLY valid JSON in this exact format:
[
  {{
    "title": "Video title idea",
    "insight": "Why this works and how to approach it",
    "evidence": [0, 3, 7]
  }}
]

The "evidence" array must contain the bracket numbers (integers) of the outlier videos that inspired each idea."""


def _cited_indices(raw: Any, size: int) -> list[int]:
    if not isinstance(raw, list):
        return []
    indices = []
    for value in raw:
        if isinstance(value, bool):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, int) and 0 <= value < size:
            indices.append(value)
    return indices


def _backfill_index(
    working_set: Sequence[OutlierVideo],
    used: set[int],
    cited_channels: set[str],
    position: int,
) -> int:
    for i, video in enumerate(working_set):
        if i not in used and video.channel_id not in cited_channels:
            return i
    for i in range(len(working_set)):
        if i not in used:
            return i
    return position % len(working_set)


def reconcile_ideas(payload: Sequence[Any], working_set: Sequence[OutlierVideo]) -> list[VideoIdea]:
    """Turn raw model entries into ideas whose evidence comes from the working set."""
    if not working_set:
        return []
    used: set[int] = set()
    ideas = []

    for position, entry in enumerate(list(payload)[:IDEA_COUNT]):
        if not isinstance(entry, dict):
            continue
        title = str(entry.get("title") or "").strip()
        if not title:
            continue

        chosen: list[int] = []
        cited_channels: set[str] = set()
        for idx in _cited_indices(entry.get("evidence"), len(working_set)):
            channel_id = working_set[idx].channel_id
            if channel_id in cited_channels:
                continue
            chosen.append(idx)
            cited_channels.add(channel_id)
            if len(chosen) == MAX_EVIDENCE:
                break

        if not chosen:
            chosen.append(_backfill_index(working_set, used, cited_channels, position))
        used.update(chosen)

        ideas.append(
            VideoIdea(
                title=title,
                insight=str(entry.get("insight") or "").strip(),
                evidence=[EvidenceVideo.from_outlier(working_set[i]) for i in chosen],
            )
        )
    return ideas


def synthesize_ideas(
    channel: ChannelProfile,
    niche: Sequence[str],
    outliers: Sequence[OutlierVideo],
    recent_titles: Sequence[str] | None = None,
    generate: Generate | None = None,
    year: int | None = None,
) -> list[VideoIdea]:
    """
    Ask the generation provider for ideas grounded in the top outliers.

    Returns an empty list when the model output cannot be parsed into a list.
    Provider unavailability is not caught here and reaches the caller.
    """
    working_set = list(outliers[: settings.IDEA_WORKING_SET_SIZE])
    if not working_set:
        return []

    generate = generate or (lambda prompt: llm.generate_text(prompt, stage="ideas"))
    prompt = build_idea_prompt(channel, niche, working_set, recent_titles=recent_titles, year=year)
    text = generate(prompt)

    try:
        payload = parse_json_payload(text, stage="ideas")
    except MalformedResponseError:
        logger.warning("Idea generation returned non-JSON output (%d chars)", len(text or ""))
        return []
    if not isinstance(payload, list):
        logger.warning("Idea generation returned %s instead of a list", type(payload).__name__)
        return []
    return reconcile_ideas(payload, working_set)
