"""Four-stage flow: resolve -> niche -> peers & outliers -> ideas.

Caching and the free-tier gate wrap the stage calls here; the analytical
modules (peer_range, catalog, outliers, peers, ideas) stay free of both.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Sequence

from pydantic import BaseModel

from .. import settings
from ..models import (
    ChannelAnalysis,
    ChannelProfile,
    OutlierVideo,
    PeerResult,
    PeerSummary,
    VideoIdea,
    VideoRecord,
)
from . import llm, youtube
from .cache import TTLCache, cached_fetch, channel_cache_key, peers_cache_key, videos_cache_key
from .catalog import normalize_catalog
from .errors import MalformedResponseError, NotFoundError, PipelineError, QuotaExceededError, UnavailableError
from .history import HistoryStore
from .ideas import extract_niche, synthesize_ideas
from .outliers import detect_outliers, rank_outliers
from .peer_range import select_peer_band
from .peers import discover_peers, exclude_channel

logger = logging.getLogger(__name__)


class IdeasResult(BaseModel):
    ideas: list[VideoIdea]
    generation_id: str | None = None


class PipelineRun(BaseModel):
    analysis: ChannelAnalysis
    peers: PeerResult
    ideas: IdeasResult


class IdeaPipeline:
    def __init__(
        self,
        cache: TTLCache | None = None,
        history: HistoryStore | None = None,
        resolve: Callable[[str], ChannelProfile] | None = None,
        fetch_videos: Callable[[str, int], list[VideoRecord]] | None = None,
        search: Callable[[list[str], int], list[ChannelProfile]] | None = None,
        generate: Callable[[str], str] | None = None,
        providers: Sequence | None = None,
    ):
        self.cache = cache or TTLCache()
        self.history = history or HistoryStore()
        self.resolve = resolve or youtube.resolve_channel
        self.fetch_videos = fetch_videos or youtube.fetch_recent_videos
        self.search = search or youtube.search_channels
        self.generate = generate
        self.providers = providers

    def _generator(self, stage: str) -> Callable[[str], str]:
        if self.generate is not None:
            return self.generate
        return lambda prompt: llm.generate_text(prompt, providers=self.providers, stage=stage)

    # Stage 1 -------------------------------------------------------------

    def analyze_channel(self, query: str) -> ChannelAnalysis:
        query = (query or "").strip()

        def load() -> ChannelAnalysis:
            channel = self.resolve(query)
            videos = self.fetch_videos(channel.channel_id, settings.RECENT_VIDEO_SAMPLE)
            titles = [video.title for video in videos]
            niche = extract_niche(channel, titles, generate=self._generator("niche"))
            return ChannelAnalysis(channel=channel, niche=niche, recent_titles=titles)

        return cached_fetch(self.cache, "channel", channel_cache_key(query), load)

    # Stages 2-3 ----------------------------------------------------------

    def check_free_tier(self, identity: str | None, entitled: bool) -> int:
        count = self.history.count(identity)
        if not entitled and count >= settings.FREE_TIER_LIMIT:
            raise QuotaExceededError(count=count, limit=settings.FREE_TIER_LIMIT)
        return count

    def _load_peer_catalog(self, channel_id: str) -> list[VideoRecord]:
        return cached_fetch(
            self.cache,
            "videos",
            videos_cache_key(channel_id),
            lambda: self.fetch_videos(channel_id, settings.RECENT_VIDEO_SAMPLE),
            store_if=bool,
        )

    def _scan_peer(self, peer: ChannelProfile) -> tuple[PeerSummary, list[OutlierVideo]]:
        eligible = normalize_catalog(self._load_peer_catalog(peer.channel_id))
        outliers = detect_outliers(
            eligible,
            peer.channel_id,
            peer.title,
            threshold=settings.OUTLIER_THRESHOLD,
        )
        summary = PeerSummary(
            **peer.model_dump(),
            sampled_video_count=len(eligible),
            outlier_count=len(outliers),
        )
        return summary, outliers

    def _scan_peers(self, peers: Sequence[ChannelProfile]) -> list[tuple[PeerSummary, list[OutlierVideo]]]:
        stop = threading.Event()

        def scan(peer: ChannelProfile):
            # A worker may pick up the next peer before pending futures are cancelled.
            if stop.is_set():
                return None
            try:
                return self._scan_peer(peer)
            except Exception:
                stop.set()
                raise

        workers = max(1, min(settings.PEER_FETCH_WORKERS, len(peers)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="peer-scan")
        try:
            futures = [executor.submit(scan, peer) for peer in peers]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [future for future in futures if future in done and future.exception() is not None]
            if failed:
                for future in pending:
                    future.cancel()
                exc = failed[0].exception()
                if isinstance(exc, PipelineError):
                    raise exc
                logger.warning("Peer scan failed: %s", exc)
                raise UnavailableError("Could not analyze peer channels right now.", stage="peers") from exc
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def find_peers(
        self,
        channel_id: str,
        subscriber_count: int,
        niche: list[str],
        identity: str | None = None,
        entitled: bool = False,
    ) -> PeerResult:
        self.check_free_tier(identity, entitled)

        band = select_peer_band(subscriber_count)
        peers = cached_fetch(
            self.cache,
            "peers",
            peers_cache_key(niche, band.min, band.max),
            lambda: exclude_channel(
                discover_peers(niche, band, settings.PEER_SEARCH_RESULTS, search=self.search),
                channel_id,
            ),
            store_if=bool,
        )
        peers = exclude_channel(peers, channel_id)
        if not peers:
            raise NotFoundError("No peer channels found in this niche. Try a different channel.", stage="peers")

        scanned = self._scan_peers(peers[: settings.MAX_PEERS])
        outliers = rank_outliers((found for _, found in scanned), settings.OUTLIER_DISPLAY_LIMIT)
        return PeerResult(
            peers=[summary for summary, _ in scanned],
            outliers=outliers,
            peer_range=band,
        )

    # Stage 4 -------------------------------------------------------------

    def generate_ideas(
        self,
        channel: ChannelProfile,
        niche: list[str],
        outliers: Sequence[OutlierVideo],
        peers: Sequence[PeerSummary] | None = None,
        identity: str | None = None,
        recent_titles: Sequence[str] | None = None,
    ) -> IdeasResult:
        if not outliers:
            raise NotFoundError("No outlier videos found among peer channels.", stage="ideas")
        ideas = synthesize_ideas(
            channel,
            niche,
            outliers,
            recent_titles=recent_titles,
            generate=self._generator("ideas"),
        )
        if not ideas:
            raise MalformedResponseError("Failed to generate ideas. Please try again.", stage="ideas")

        record = self.history.save(
            identity=identity,
            channel_id=channel.channel_id,
            channel_title=channel.title,
            channel_thumbnail=channel.thumbnail,
            channel_subs=channel.subscriber_count,
            niche=", ".join(niche),
            peers=[peer.model_dump() for peer in peers or []],
            outliers=[video.model_dump() for video in list(outliers)[: settings.IDEA_WORKING_SET_SIZE]],
            ideas=[idea.model_dump() for idea in ideas],
        )
        return IdeasResult(ideas=ideas, generation_id=record.id)

    def run(self, query: str, identity: str | None = None, entitled: bool = False) -> PipelineRun:
        analysis = self.analyze_channel(query)
        peer_result = self.find_peers(
            analysis.channel.channel_id,
            analysis.channel.subscriber_count,
            analysis.niche,
            identity=identity,
            entitled=entitled,
        )
        ideas = self.generate_ideas(
            analysis.channel,
            analysis.niche,
            peer_result.outliers,
            peers=peer_result.peers,
            identity=identity,
            recent_titles=analysis.recent_titles,
        )
        return PipelineRun(analysis=analysis, peers=peer_result, ideas=ideas)
