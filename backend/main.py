import hashlib
import logging
import time
from collections import deque

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
try:
    from backend.app import settings
    from backend.app.models import ChannelProfile, OutlierVideo, PeerSummary
    from backend.app.services.cache import TTLCache
    from backend.app.services.errors import PipelineError
    from backend.app.services.feedback import send_feedback
    from backend.app.services.history import HistoryStore
    from backend.app.services.peer_range import format_subscribers
    from backend.app.services.pipeline import IdeaPipeline
except ModuleNotFoundError:
    from app import settings
    from app.models import ChannelProfile, OutlierVideo, PeerSummary
    from app.services.cache import TTLCache
    from app.services.errors import PipelineError
    from app.services.feedback import send_feedback
    from app.services.history import HistoryStore
    from app.services.peer_range import format_subscribers
    from app.services.pipeline import IdeaPipeline

logger = logging.getLogger(__name__)


# ---------------------------
# Request models
# ---------------------------

class AnalyzeChannelRequest(BaseModel):
    input: str = ""


class FindPeersRequest(BaseModel):
    channel_id: str = ""
    subscriber_count: int | None = None
    niche: list[str] = Field(default_factory=list)
    session_id: str | None = None


class GenerateIdeasRequest(BaseModel):
    channel: ChannelProfile | None = None
    niche: list[str] = Field(default_factory=list)
    peers: list[PeerSummary] = Field(default_factory=list)
    outliers: list[OutlierVideo] = Field(default_factory=list)
    recent_titles: list[str] = Field(default_factory=list)
    session_id: str | None = None


class RunRequest(BaseModel):
    input: str = ""
    session_id: str | None = None


class FeedbackRequest(BaseModel):
    type: str | None = None
    message: str = ""
    email: str | None = None


# ---------------------------
# Shared state
# ---------------------------

CACHE = TTLCache()
HISTORY = HistoryStore(settings.HISTORY_FILE)
PIPELINE = IdeaPipeline(cache=CACHE, history=HISTORY)

API_RATE_LIMIT_BUCKETS: dict[str, deque[float]] = {}


def get_client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_api_rate_limit(request: Request, scope: str = "api") -> None:
    now_ts = time.time()
    key = f"{scope}:{get_client_ip(request)}"
    bucket = API_RATE_LIMIT_BUCKETS.get(key)
    if bucket is None:
        bucket = deque()
        API_RATE_LIMIT_BUCKETS[key] = bucket

    cutoff = now_ts - settings.API_RATE_LIMIT_WINDOW_SECONDS
    while bucket and bucket[0] < cutoff:
        bucket.popleft()

    if len(bucket) >= settings.API_RATE_LIMIT_MAX_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please wait a minute and try again.",
        )

    bucket.append(now_ts)


def get_bearer_token(request: Request) -> str | None:
    header = (request.headers.get("authorization") or "").strip()
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    return token or None


def resolve_identity(request: Request, session_id: str | None) -> tuple[str | None, bool]:
    """
    A known bearer token identifies a signed-in caller. Unknown tokens are
    ignored and the caller is counted by session id.
    """
    token = get_bearer_token(request)
    if token and (token in settings.PRO_ACCESS_TOKENS or token in settings.USER_ACCESS_TOKENS):
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{digest}", token in settings.PRO_ACCESS_TOKENS
    session_id = (session_id or "").strip()
    if session_id:
        return f"session:{session_id}", False
    return None, False


# ---------------------------
# App setup
# ---------------------------

def parse_cors_origins() -> tuple[list[str], bool]:
    raw = settings.CORS_ALLOWED_ORIGINS
    if not raw:
        return ["http://localhost:3000"], True
    if raw == "*":
        return ["*"], False
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        return ["http://localhost:3000"], True
    return origins, True

app = FastAPI()

cors_origins, cors_credentials = parse_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(_request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.warning("Pipeline stage %s failed: %s", exc.stage, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/analyze-channel")
def analyze_channel(payload: AnalyzeChannelRequest, request: Request):
    query = (payload.input or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Please provide a channel URL, handle, or name")
    enforce_api_rate_limit(request, scope="analyze")

    analysis = PIPELINE.analyze_channel(query)
    result = analysis.model_dump()
    result["subscribers_display"] = format_subscribers(analysis.channel.subscriber_count)
    return result


@app.post("/find-peers")
def find_peers(payload: FindPeersRequest, request: Request):
    if not payload.channel_id or payload.subscriber_count is None or not payload.niche:
        raise HTTPException(status_code=400, detail="Missing required fields")
    enforce_api_rate_limit(request, scope="peers")

    identity, entitled = resolve_identity(request, payload.session_id)
    result = PIPELINE.find_peers(
        payload.channel_id,
        payload.subscriber_count,
        payload.niche,
        identity=identity,
        entitled=entitled,
    )
    return result.model_dump()


@app.post("/generate-ideas")
def generate_ideas(payload: GenerateIdeasRequest, request: Request):
    if payload.channel is None or not payload.niche or not payload.outliers:
        raise HTTPException(status_code=400, detail="Missing required fields")
    enforce_api_rate_limit(request, scope="ideas")

    identity, _entitled = resolve_identity(request, payload.session_id)
    result = PIPELINE.generate_ideas(
        payload.channel,
        payload.niche,
        payload.outliers,
        peers=payload.peers,
        identity=identity,
        recent_titles=payload.recent_titles,
    )
    return result.model_dump()


@app.post("/run")
def run_pipeline(payload: RunRequest, request: Request):
    query = (payload.input or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Please provide a channel URL, handle, or name")
    enforce_api_rate_limit(request, scope="run")

    identity, entitled = resolve_identity(request, payload.session_id)
    return PIPELINE.run(query, identity=identity, entitled=entitled).model_dump()


@app.get("/history")
def list_history(request: Request, session_id: str | None = None):
    enforce_api_rate_limit(request, scope="history")
    identity, _entitled = resolve_identity(request, session_id)
    records = HISTORY.list_recent(identity, limit=settings.HISTORY_LIST_LIMIT)
    return {"items": [record.model_dump() for record in records]}


@app.get("/history/{generation_id}")
def get_history_item(generation_id: str, request: Request):
    enforce_api_rate_limit(request, scope="history")
    record = HISTORY.get(generation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return record.model_dump()


@app.post("/feedback")
def feedback(payload: FeedbackRequest, request: Request):
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message required")
    enforce_api_rate_limit(request, scope="feedback")
    send_feedback(payload.type, message, payload.email)
    return {"ok": True}
