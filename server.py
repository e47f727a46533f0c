"""HTTP server: posts, search, notifications, subscriptions, health, stats. WebSocket: register, subscribeToTopic, unsubscribeFromTopic, ping."""

from dotenv import load_dotenv
load_dotenv()

import json
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from feedhub.config import Settings
from feedhub.errors import FeedHubError, Unauthorized, ValidationError
from feedhub.hub import FeedHub
from feedhub.observability import get_logger
from feedhub.protocol import (
    HealthResponse,
    PublishResponse,
    notifications_response,
    stats_response,
    subscriptions_response,
    ws_ack,
    ws_error,
    ws_pong,
    ws_ts,
    ERROR_BAD_REQUEST,
    ERROR_INTERNAL,
)

logger = get_logger("feedhub.server")

router = APIRouter()


def _hub(request: Request) -> FeedHub:
    return request.app.state.hub


class XAPIKeyMiddleware(BaseHTTPMiddleware):
    """Require X-API-Key header when an API key is configured."""

    def __init__(self, app, api_key: str) -> None:
        super().__init__(app)
        self._api_key = api_key

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)
        key = (request.headers.get("X-API-Key") or "").strip()
        if key != self._api_key:
            return JSONResponse(
                status_code=401,
                content=Unauthorized("invalid or missing X-API-Key").to_dict(),
            )
        return await call_next(request)


async def _feedhub_error_handler(request: Request, exc: FeedHubError) -> JSONResponse:
    if exc.status >= 500:
        logger.warning("request_failed", extra={"path": request.url.path, "code": exc.code, "error": exc.message})
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content=ValidationError(message).to_dict())


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unexpected_error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": ERROR_INTERNAL, "message": "internal server error"})


# ---- Health / Stats ----

@router.get("/health")
def health(request: Request) -> JSONResponse:
    """GET /health → { uptime_sec, topics, users, sessions }."""
    hub = _hub(request)
    body = HealthResponse(
        uptime_sec=time.time() - request.app.state.start_time,
        topics=hub.registry.topic_count(),
        users=hub.registry.user_count(),
        sessions=hub.transport.session_count,
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


@router.get("/stats")
def stats(request: Request) -> JSONResponse:
    """GET /stats → { metrics: { counters, gauges }, topics: { name: { subscribers, sessions } } }."""
    hub = _hub(request)
    body = stats_response(hub.metrics.snapshot(), hub.registry.topic_stats())
    return JSONResponse(content=body, status_code=200)


# ---- Posts ----

async def _read_post_body(request: Request) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    """Accept multipart (with optional image part) or JSON."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        data = await _read_json(request)
        return data, None
    form = await request.form()
    fields = {k: v for k, v in form.items() if isinstance(v, str)}
    image = form.get("image")
    if isinstance(image, UploadFile) and image.filename:
        return fields, image
    return fields, None


async def _read_json(request: Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError as e:
        raise ValidationError("request body must be valid JSON") from e
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


@router.post("/posts")
async def create_post(request: Request) -> JSONResponse:
    """POST /posts (multipart, optional image) → 201 { result, post, subscribers, notified, pushed }."""
    hub = _hub(request)
    fields, upload = await _read_post_body(request)
    image = (upload.filename, await upload.read()) if upload is not None else None
    result = await hub.publish(fields, image=image)
    body = PublishResponse(
        post=result.post.to_dict(),
        subscribers=result.subscribers,
        notified=result.notified,
        pushed=result.pushed,
        failed=result.failed,
    ).to_dict()
    return JSONResponse(content=body, status_code=201)


@router.get("/posts")
async def list_posts(request: Request) -> JSONResponse:
    posts = await _hub(request).list_posts()
    return JSONResponse(content=[p.to_dict() for p in posts], status_code=200)


@router.get("/posts/{topic}")
async def posts_by_topic(request: Request, topic: str) -> JSONResponse:
    posts = await _hub(request).posts_by_topic(topic)
    return JSONResponse(content=[p.to_dict() for p in posts], status_code=200)


@router.put("/posts/{post_id}")
async def update_post(request: Request, post_id: str) -> JSONResponse:
    """PUT /posts/{id} with a partial document → merged post, or 404."""
    fields = await _read_json(request)
    post = await _hub(request).update_post(post_id, fields)
    return JSONResponse(content=post.to_dict(), status_code=200)


@router.delete("/posts/{post_id}")
async def delete_post(request: Request, post_id: str) -> JSONResponse:
    await _hub(request).delete_post(post_id)
    return JSONResponse(content={"status": "deleted", "id": post_id}, status_code=200)


@router.get("/search")
async def search(request: Request, q: Optional[str] = None) -> JSONResponse:
    """GET /search?q= → up to SEARCH_MAX_RESULTS posts, best match first."""
    posts = await _hub(request).search(q)
    return JSONResponse(content=[p.to_dict() for p in posts], status_code=200)


# ---- Notifications ----

@router.get("/notifications/{username}")
async def list_notifications(request: Request, username: str) -> JSONResponse:
    notifications = await _hub(request).notifications(username)
    body = notifications_response([n.to_dict() for n in notifications])
    return JSONResponse(content=body, status_code=200)


@router.post("/notifications/{username}/clear")
async def clear_notifications(request: Request, username: str) -> JSONResponse:
    cleared = await _hub(request).clear_notifications(username)
    return JSONResponse(
        content={"message": f"Cleared notifications for {username}", "cleared": cleared},
        status_code=200,
    )


# ---- Subscriptions ----

class SubscriptionBody(BaseModel):
    username: str = ""
    topic: str = ""


@router.post("/subscribe")
async def subscribe(request: Request, body: SubscriptionBody) -> JSONResponse:
    """POST /subscribe { username, topic } → durable interest in topic."""
    username, topic = body.username.strip(), body.topic.strip()
    await _hub(request).subscribe(username, topic)
    return JSONResponse(content={"message": f"Subscribed {username} to {topic}"}, status_code=200)


@router.post("/unsubscribe")
async def unsubscribe(request: Request, body: SubscriptionBody) -> JSONResponse:
    username, topic = body.username.strip(), body.topic.strip()
    await _hub(request).unsubscribe(username, topic)
    return JSONResponse(content={"message": f"Unsubscribed {username} from {topic}"}, status_code=200)


@router.get("/subscriptions/{username}")
def list_subscriptions(request: Request, username: str) -> JSONResponse:
    topics = _hub(request).topics_of(username)
    return JSONResponse(content=subscriptions_response(topics), status_code=200)


# ---- AI reply ----

class GenerateReplyBody(BaseModel):
    prompt: str = ""
    useAIGeneratedReply: bool = False


@router.post("/generateReply")
async def generate_reply(request: Request, body: GenerateReplyBody) -> JSONResponse:
    """POST /generateReply { prompt, useAIGeneratedReply } → { reply }."""
    if not body.useAIGeneratedReply:
        raise ValidationError("AI-generated reply is disabled.")
    reply = await _hub(request).replies.generate(body.prompt)
    return JSONResponse(content={"reply": reply}, status_code=200)


# ---- WebSocket (register, subscribeToTopic, unsubscribeFromTopic, ping) ----

def _ws_api_key_ok(websocket: WebSocket, expected: Optional[str]) -> bool:
    """Return True if no key is configured or X-API-Key matches it."""
    if not expected:
        return True
    raw = websocket.scope.get("headers") or []
    key = ""
    for k, v in raw:
        name = k.decode("utf-8", errors="ignore").lower()
        if name == "x-api-key":
            key = v.decode("utf-8", errors="ignore").strip()
            break
    return key == expected


@router.websocket("/ws")
async def websocket_handler(websocket: WebSocket) -> None:
    """
    WebSocket endpoint. Messages: register, subscribeToTopic, unsubscribeFromTopic, ping.
    Server replies: ack, error, pong; pushes: newPost, info (heartbeat).
    """
    hub: FeedHub = websocket.app.state.hub
    await websocket.accept()
    if not _ws_api_key_ok(websocket, hub.settings.api_key):
        await websocket.send_json(ws_error(None, Unauthorized.code, "invalid or missing X-API-Key", ws_ts()))
        await websocket.close()
        return
    session = hub.connect(websocket.send_json)
    session_id = session.session_id
    await websocket.send_json(ws_ack(None, ws_ts(), session_id=session_id))
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Invalid JSON", ws_ts()))
                continue
            if not isinstance(msg, dict):
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Expected a JSON object", ws_ts()))
                continue
            msg_type = msg.get("type")
            request_id = msg.get("request_id")

            try:
                if msg_type == "ping":
                    await websocket.send_json(ws_pong(request_id, ws_ts()))
                    continue

                if msg_type == "register":
                    username = (msg.get("username") or "").strip()
                    await hub.register(session_id, username)
                    await websocket.send_json(ws_ack(request_id, ws_ts(), username=username))
                    continue

                if msg_type == "subscribeToTopic":
                    topic = (msg.get("topic") or "").strip()
                    await hub.join_topic(session_id, topic)
                    await websocket.send_json(ws_ack(request_id, ws_ts(), topic=topic))
                    continue

                if msg_type == "unsubscribeFromTopic":
                    topic = (msg.get("topic") or "").strip()
                    await hub.leave_topic(session_id, topic)
                    await websocket.send_json(ws_ack(request_id, ws_ts(), topic=topic))
                    continue
            except FeedHubError as e:
                await websocket.send_json(ws_error(request_id, e.code, e.message, ws_ts()))
                continue

            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                f"Unknown type: {msg_type!r}",
                ws_ts(),
            ))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("websocket_error", extra={"session_id": session_id})
        try:
            await websocket.send_json(ws_error(None, ERROR_INTERNAL, f"Unexpected server error: {e!s}", ws_ts()))
        except Exception:
            pass
    finally:
        hub.disconnect(session_id)


def create_app(settings: Optional[Settings] = None, hub: Optional[FeedHub] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    hub = hub or FeedHub.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.hub = hub
        app.state.start_time = time.time()
        await hub.start()
        yield
        await hub.stop()

    app = FastAPI(title="FeedHub API", lifespan=lifespan)
    if settings.api_key:
        app.add_middleware(XAPIKeyMiddleware, api_key=settings.api_key)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FeedHubError, _feedhub_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=hub.assets.upload_dir, check_dir=False), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = Settings.from_env()
    uvicorn.run("server:app", host=_settings.host, port=_settings.port)
