"""Environment configuration for the ideas backend."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

try:
    if ENV_PATH.exists():
        load_dotenv(dotenv_path=ENV_PATH)
    else:
        load_dotenv()
except PermissionError:
    logger.warning(
        "Unable to read %s due to permissions. Using existing environment variables.",
        ENV_PATH,
    )


def _env_list(name: str) -> list[str]:
    raw = (os.getenv(name) or "").strip()
    return [value.strip() for value in raw.split(",") if value.strip()]


# --- API keys ---
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY")
RESEND_API_KEY = os.getenv("RESEND_API_KEY")

# --- Generation providers ---
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

# --- Network ---
HTTP_TIMEOUT_SECONDS = int(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

# --- Analysis constants ---
OUTLIER_THRESHOLD = float(os.getenv("OUTLIER_THRESHOLD", "3.0"))
RECENT_VIDEO_SAMPLE = int(os.getenv("RECENT_VIDEO_SAMPLE", "30"))
PEER_SEARCH_RESULTS = int(os.getenv("PEER_SEARCH_RESULTS", "20"))
MAX_PEERS = int(os.getenv("MAX_PEERS", "10"))
PEER_FETCH_WORKERS = int(os.getenv("PEER_FETCH_WORKERS", "5"))
OUTLIER_DISPLAY_LIMIT = int(os.getenv("OUTLIER_DISPLAY_LIMIT", "30"))
IDEA_WORKING_SET_SIZE = int(os.getenv("IDEA_WORKING_SET_SIZE", "20"))

# --- Free tier / entitlement ---
FREE_TIER_LIMIT = int(os.getenv("FREE_TIER_LIMIT", "3"))
PRO_ACCESS_TOKENS = set(_env_list("PRO_ACCESS_TOKENS"))
USER_ACCESS_TOKENS = set(_env_list("USER_ACCESS_TOKENS"))

# --- Storage ---
HISTORY_FILE = Path(
    os.getenv("HISTORY_FILE")
    or (BASE_DIR / "data_runtime" / "generations.json")
)
HISTORY_LIST_LIMIT = int(os.getenv("HISTORY_LIST_LIMIT", "20"))

# --- Feedback relay ---
FEEDBACK_TO_EMAIL = os.getenv("FEEDBACK_TO_EMAIL", "")
FEEDBACK_FROM_EMAIL = os.getenv("FEEDBACK_FROM_EMAIL", "Next Video <hello@example.com>")

# --- HTTP surface ---
CORS_ALLOWED_ORIGINS = (os.getenv("CORS_ALLOWED_ORIGINS") or "").strip()
API_RATE_LIMIT_WINDOW_SECONDS = 60
API_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("API_RATE_LIMIT_MAX_REQUESTS", "30"))
