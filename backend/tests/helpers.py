from datetime import datetime, timedelta, timezone

from starlette.requests import Request

from backend.app.models import ChannelProfile, OutlierVideo, VideoRecord


def make_request(ip: str = "127.0.0.1", headers: dict | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
            "client": (ip, 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def make_video(video_id, views, days_ago=10, duration="PT5M"):
    published_at = (datetime.now(timezone.utc) - timedelta(days=days_ago)).isoformat().replace("+00:00", "Z")
    return VideoRecord(
        video_id=video_id,
        title=f"Video {video_id}",
        published_at=published_at,
        view_count=views,
        thumbnail=f"https://img/{video_id}.jpg",
        duration=duration,
    )


def make_channel(channel_id="UC_SOURCE", title="Source", subscribers=7_500, videos=40, description=""):
    return ChannelProfile(
        channel_id=channel_id,
        title=title,
        description=description,
        thumbnail=f"https://img/{channel_id}.jpg",
        subscriber_count=subscribers,
        video_count=videos,
    )


def make_outlier(video_id, channel_id, multiplier=5.0, views=50_000):
    return OutlierVideo(
        video_id=video_id,
        title=f"Outlier {video_id}",
        published_at="2026-06-01T00:00:00Z",
        view_count=views,
        thumbnail=f"https://img/{video_id}.jpg",
        duration="PT8M",
        multiplier=multiplier,
        channel_id=channel_id,
        channel_title=f"Channel {channel_id}",
    )
