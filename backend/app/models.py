from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ChannelProfile(FrozenModel):
    channel_id: str
    title: str
    description: str = ""
    thumbnail: str = ""
    subscriber_count: int = 0
    video_count: int = 0
    custom_url: str | None = None


class VideoRecord(FrozenModel):
    video_id: str
    title: str
    published_at: str
    view_count: int = 0
    like_count: int | None = None
    comment_count: int | None = None
    thumbnail: str = ""
    duration: str | None = None


class OutlierVideo(VideoRecord):
    multiplier: float
    channel_id: str
    channel_title: str


class PeerBand(FrozenModel):
    min: int
    max: int

    def contains(self, subscriber_count: int) -> bool:
        return self.min <= subscriber_count <= self.max


class EvidenceVideo(FrozenModel):
    video_id: str
    title: str
    channel_id: str
    channel_title: str
    view_count: int
    multiplier: float
    thumbnail: str = ""

    @classmethod
    def from_outlier(cls, video: OutlierVideo) -> "EvidenceVideo":
        return cls(
            video_id=video.video_id,
            title=video.title,
            channel_id=video.channel_id,
            channel_title=video.channel_title,
            view_count=video.view_count,
            multiplier=video.multiplier,
            thumbnail=video.thumbnail,
        )


class VideoIdea(FrozenModel):
    title: str
    insight: str
    evidence: list[EvidenceVideo] = Field(default_factory=list)


class PeerSummary(ChannelProfile):
    sampled_video_count: int = 0
    outlier_count: int = 0


class ChannelAnalysis(FrozenModel):
    channel: ChannelProfile
    niche: list[str]
    recent_titles: list[str] = Field(default_factory=list)


class PeerResult(FrozenModel):
    peers: list[PeerSummary]
    outliers: list[OutlierVideo]
    peer_range: PeerBand


class GenerationRecord(BaseModel):
    id: str
    identity: str | None = None
    channel_id: str
    channel_title: str
    channel_thumbnail: str = ""
    channel_subs: int = 0
    niche: str = ""
    peers: list[dict[str, Any]] = Field(default_factory=list)
    outliers: list[dict[str, Any]] = Field(default_factory=list)
    ideas: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str
