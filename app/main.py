from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
import logging
from pydantic import BaseModel, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import get_settings
from relay.core.linking import LinkError, LinkRegistry
from relay.core.store import JsonFileStore
from relay.tools import GeminiRelay, LinePushNotifier, RelayError, build_notifier, build_relay


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("line_relay")

ModelT = TypeVar("ModelT", bound=BaseModel)

app = FastAPI(title="LINE Reminder Relay", version="1.0.0")

settings = get_settings()
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

if not settings.gemini_api_key:
    logger.error("GEMINI_API_KEY is missing")
if not settings.line_token:
    logger.error("LINE_CHANNEL_ACCESS_TOKEN is missing")


@lru_cache(maxsize=1)
def get_registry() -> LinkRegistry:
    settings = get_settings()
    return LinkRegistry(JsonFileStore(settings.users_file), tz_name=settings.reminder_timezone)


def get_notifier() -> LinePushNotifier:
    return build_notifier()


def get_relay() -> GeminiRelay:
    return build_relay()


def get_public_dir() -> Path:
    return Path(get_settings().public_dir)


FORM_CONTENT_TYPES = {"application/x-www-form-urlencoded", "multipart/form-data"}


class LinkRequest(BaseModel):
    email: Optional[str] = None


class ReminderRequest(BaseModel):
    email: Optional[str] = None
    text: Optional[str] = None
    timeISO: Optional[str] = Field(default=None, description="ISO-8601 reminder time")


async def _parse_body(request: Request) -> Any:
    """JSON or form body; an empty body reads as ``{}``."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    raw = await request.body()
    if not raw.strip():
        return {}
    return json.loads(raw)


async def read_body(request: Request) -> Any:
    try:
        return await _parse_body(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"invalid request body: {e}")


async def read_webhook_body(request: Request) -> Any:
    try:
        return await _parse_body(request)
    except ValueError as e:
        logger.warning("Ignoring malformed webhook body: %s", e)
        return {}


def _validate(model: Type[ModelT], body: Any) -> ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        raise HTTPException(status_code=400, detail=f"{field}: {first['msg']}")


@app.exception_handler(LinkError)
def handle_link_error(request: Request, exc: LinkError) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {"loc": (), "msg": "invalid request"}
    field = ".".join(str(part) for part in first["loc"]) or "request"
    message = f"{field}: {first['msg']}"
    logger.info("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


@app.post("/api/chat")
def chat(payload: Any = Depends(read_body), relay: GeminiRelay = Depends(get_relay)) -> Any:
    try:
        logger.info("Relaying chat to model=%s", relay.model)
        return JSONResponse(content=relay.relay(payload))
    except RelayError as e:
        logger.exception("Chat relay failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.post("/api/line-webhook")
def line_webhook(
    payload: Any = Depends(read_webhook_body),
    registry: LinkRegistry = Depends(get_registry),
) -> Response:
    # LINE retries on non-2xx, so every outcome is acknowledged with 200.
    events = payload.get("events") if isinstance(payload, dict) else None
    if events is None:
        events = []
    if not isinstance(events, list):
        logger.warning("Ignoring webhook events of type %s", type(events).__name__)
        events = []

    try:
        captured = registry.ingest(events)
        logger.info("Webhook processed: events=%s captured=%s", len(events), len(captured))
    except Exception as e:
        logger.exception("Webhook processing failed: %s", e)
    return Response(status_code=200)


@app.post("/api/link-line")
def link_line(body: Any = Depends(read_body), registry: LinkRegistry = Depends(get_registry)) -> dict:
    req = _validate(LinkRequest, body)
    registry.link(req.email)
    return {"success": True}


@app.get("/api/line-user")
def line_user(email: Optional[str] = None, registry: LinkRegistry = Depends(get_registry)) -> dict:
    return {"lineUserId": registry.lookup(email)}


@app.post("/api/reminder")
def reminder(
    body: Any = Depends(read_body),
    registry: LinkRegistry = Depends(get_registry),
    notifier: LinePushNotifier = Depends(get_notifier),
) -> dict:
    req = _validate(ReminderRequest, body)
    registry.remind(req.email, req.text, req.timeISO, notifier)
    return {"success": True}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/{path:path}")
def client_app(path: str, public_dir: Path = Depends(get_public_dir)) -> Response:
    root = public_dir.resolve()
    if path:
        candidate = (root / path).resolve()
        if candidate.is_file() and root in candidate.parents:
            return FileResponse(candidate)
    index = root / "index.html"
    if not index.is_file():
        return JSONResponse(status_code=404, content={"error": "index.html not found"})
    return FileResponse(index)


def run() -> None:
    import uvicorn

    settings = get_settings()
    logger.info("LINE reminder relay running on port %s", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
