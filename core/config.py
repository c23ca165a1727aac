import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)) or default)
    except ValueError:
        return default


# Job / lock store (Redis when configured, in-memory otherwise)
REDIS_URL = (os.getenv("REDIS_URL", "") or "").strip()
JOB_TTL_SEC = _int_env("JOB_TTL_SEC", 24 * 3600)
LOCK_TTL_SEC = _int_env("LOCK_TTL_SEC", 24 * 3600)
DOWNLOAD_TOKEN_TTL_SEC = _int_env("DOWNLOAD_TOKEN_TTL_SEC", 24 * 3600)

# Per-subscriber buffered events; a full buffer drops events instead of stalling the worker
SUBSCRIBER_QUEUE_SIZE = _int_env("SUBSCRIBER_QUEUE_SIZE", 256)

# How often a subscriber to a job owned by another process re-reads it from the store
JOB_POLL_INTERVAL_MS = _int_env("JOB_POLL_INTERVAL_MS", 500)

_default_origins = ",".join([
    "http://localhost:8080",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
])
ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or _default_origins).split(",") if o.strip()]

# Optional TTF for the visible overlay; Pillow's bundled font is used when unset
WATERMARK_TTF = (os.getenv("WATERMARK_TTF", "") or "").strip()

# Logging
LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("endecode")
