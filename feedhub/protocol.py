"""Protocol message shapes for HTTP and WebSocket (health, subscribe, newPost, etc.)."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ---- Health ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    topics: int
    users: int
    sessions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "topics": self.topics,
            "users": self.users,
            "sessions": self.sessions,
        }


# ---- Subscriptions / notifications ----

def subscriptions_response(topics: List[str]) -> Dict[str, Any]:
    """Response for GET /subscriptions/{username}."""
    return {"topics": topics}


def notifications_response(notifications: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Response for GET /notifications/{username}."""
    return {"notifications": notifications}


def stats_response(metrics: Dict[str, Dict[str, int]], topics_stats: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
    """Response for GET /stats."""
    return {"metrics": metrics, "topics": topics_stats}


# ---- Publish ----

@dataclass
class PublishResponse:
    """Response for POST /posts (201 Created)."""
    post: Dict[str, Any]
    subscribers: int
    notified: int
    pushed: int
    failed: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["result"] = "created"
        if not d.get("failed"):
            d.pop("failed", None)
        return d


# ---- Error codes ----

ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_NOT_FOUND = "NOT_FOUND"
ERROR_STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
ERROR_PERSIST_FAILURE = "PERSIST_FAILURE"
ERROR_PUSH_UNAVAILABLE = "PUSH_UNAVAILABLE"
ERROR_UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
ERROR_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_INTERNAL = "INTERNAL"


# ---- WebSocket: Server → Client ----

def ws_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ws_ack(request_id: Optional[str], ts: str, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "ack", "status": "ok", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    out.update({k: v for k, v in fields.items() if v is not None})
    return out


def ws_new_post(notification: Dict[str, Any], ts: str) -> Dict[str, Any]:
    return {"type": "newPost", "notification": notification, "ts": ts}


def ws_error(request_id: Optional[str], code: str, message: str, ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "error",
        "error": {"code": code, "message": message},
        "ts": ts,
    }
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_pong(request_id: Optional[str], ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "pong", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_info(msg: str, ts: str, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "info", "msg": msg, "ts": ts}
    out.update({k: v for k, v in fields.items() if v is not None})
    return out
