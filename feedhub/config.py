"""Runtime settings read from the environment (or a .env file loaded by the server)."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

BACKEND_MEMORY = "memory"
BACKEND_ELASTICSEARCH = "elasticsearch"

DEFAULT_HEARTBEAT_INTERVAL_SEC = 30.0
DEFAULT_SESSION_QUEUE_MAX_SIZE = 1024
DEFAULT_STORE_TIMEOUT_SEC = 5.0
DEFAULT_PUSH_TIMEOUT_SEC = 2.0
DEFAULT_SEARCH_MAX_RESULTS = 100


def _env_str(name: str, default: str) -> str:
    return (os.environ.get(name) or "").strip() or default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


@dataclass
class Settings:
    """All tunables for the hub and the HTTP server."""

    store_backend: str = BACKEND_MEMORY
    elasticsearch_url: str = "http://localhost:9200"
    posts_index: str = "posts"
    notifications_index: str = "notifications"
    subscriptions_index: str = "subscriptions"
    store_timeout_sec: float = DEFAULT_STORE_TIMEOUT_SEC
    push_timeout_sec: float = DEFAULT_PUSH_TIMEOUT_SEC
    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    session_queue_max_size: int = DEFAULT_SESSION_QUEUE_MAX_SIZE
    search_max_results: int = DEFAULT_SEARCH_MAX_RESULTS
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:5000"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables; malformed numbers fall back to defaults."""
        backend = _env_str("STORE_BACKEND", BACKEND_MEMORY).lower()
        if backend not in (BACKEND_MEMORY, BACKEND_ELASTICSEARCH):
            backend = BACKEND_MEMORY
        origins = [o.strip() for o in _env_str("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            store_backend=backend,
            elasticsearch_url=_env_str("ELASTICSEARCH_URL", "http://localhost:9200"),
            posts_index=_env_str("POSTS_INDEX", "posts"),
            notifications_index=_env_str("NOTIFICATIONS_INDEX", "notifications"),
            subscriptions_index=_env_str("SUBSCRIPTIONS_INDEX", "subscriptions"),
            store_timeout_sec=_env_float("STORE_TIMEOUT_SEC", DEFAULT_STORE_TIMEOUT_SEC),
            push_timeout_sec=_env_float("PUSH_TIMEOUT_SEC", DEFAULT_PUSH_TIMEOUT_SEC),
            heartbeat_interval_sec=_env_float("HEARTBEAT_INTERVAL_SEC", DEFAULT_HEARTBEAT_INTERVAL_SEC),
            session_queue_max_size=max(1, _env_int("SESSION_QUEUE_MAX_SIZE", DEFAULT_SESSION_QUEUE_MAX_SIZE)),
            search_max_results=max(1, _env_int("SEARCH_MAX_RESULTS", DEFAULT_SEARCH_MAX_RESULTS)),
            upload_dir=_env_str("UPLOAD_DIR", "uploads"),
            public_base_url=_env_str("PUBLIC_BASE_URL", "http://localhost:5000").rstrip("/"),
            cors_origins=origins or ["*"],
            api_key=(os.environ.get("API_KEY") or "").strip() or None,
            openai_api_key=(os.environ.get("OPENAI_API_KEY") or "").strip() or None,
            openai_base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini"),
            host=_env_str("HOST", "0.0.0.0"),
            port=_env_int("PORT", 5000),
        )
