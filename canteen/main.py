# canteen/main.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from starlette.concurrency import run_in_threadpool

from .auth import user_from_token
from .config import settings
from .db import Base, engine, get_db, get_or_404
from .errors import CanteenError, Unauthorized, ValidationFailed
from .models import Order, User, XeroxOrder
from .ordering.orders import check_access
from .realtime import ACTIONS, ADMINS_TOPIC, notifier, topic_for
from .routes import admin, auth, menu, orders, queue, xerox
from .uploads import max_request_bytes

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("canteen")

app = FastAPI(title="Campus Canteen & Xerox API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

for r in (auth.router, menu.router, orders.router, queue.router, xerox.router, admin.router):
    app.include_router(r)


# -------------------
# Errors
# -------------------
@app.exception_handler(CanteenError)
async def canteen_error(_request: Request, exc: CanteenError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error(_request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(StaleDataError)
async def stale_write(request: Request, exc: StaleDataError):
    log.info("concurrent update rejected on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=409,
        content={"detail": "The record was changed by another request, reload and try again"},
    )


@app.exception_handler(Exception)
async def unhandled(request: Request, exc: Exception):
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong!"})


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


@app.middleware("http")
async def limit_upload_size(request: Request, call_next):
    # whole-body ceiling checked before reading; the per-file ceiling is enforced while streaming
    if request.method == "POST" and request.url.path.rstrip("/") == "/api/xerox":
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > max_request_bytes():
            return JSONResponse(status_code=413, content={"detail": "Upload too large"})
    return await call_next(request)


# -------------------
# Health
# -------------------
@app.get("/")
def root():
    return {"ok": True, "service": "canteen-api"}


@app.get("/api/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


# -------------------
# Real-time channel
# -------------------
# topic prefix -> (model, label) for topics scoped to one record
TRACKED = {"order": (Order, "Order"), "xerox": (XeroxOrder, "Xerox order")}


def _ws_user(db: Session, token: str | None) -> User:
    # the stored role decides admin fan-out, so a demotion applies before the token expires
    try:
        return user_from_token(db, token)
    finally:
        db.close()


def _authorize_topic(db: Session, user: User, kind: str, ident) -> None:
    """Record topics follow the HTTP rule: owner or admin."""
    if kind not in TRACKED:
        return
    model, label = TRACKED[kind]
    try:
        record = get_or_404(db, model, int(ident), label)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {label.lower()} id") from None
    finally:
        db.close()
    check_access(record, user)


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket, db: Session = Depends(get_db)):
    try:
        user = await run_in_threadpool(_ws_user, db, ws.query_params.get("token"))
    except Unauthorized as e:
        await ws.close(code=4401, reason=e.message)
        return

    await ws.accept()
    registry = notifier.registry
    conn_id = registry.register(ws)
    if user.is_admin:
        registry.subscribe(conn_id, ADMINS_TOPIC)
    log.info("socket %s connected for user %s", conn_id, user.id)

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await ws.send_json({"event": "error", "data": {"detail": "Invalid JSON"}})
                continue

            action = msg.get("action") if isinstance(msg, dict) else None
            ident = msg.get("id") if isinstance(msg, dict) else None
            if action not in ACTIONS or ident in (None, ""):
                await ws.send_json({"event": "error", "data": {"detail": "Unknown action"}})
                continue

            kind = ACTIONS[action]
            topic = topic_for(kind, ident)
            if action == "leave-queue":
                registry.unsubscribe(conn_id, topic)
                await ws.send_json({"event": "unsubscribed", "data": {"topic": topic}})
                continue

            try:
                await run_in_threadpool(_authorize_topic, db, user, kind, ident)
            except CanteenError as e:
                await ws.send_json({"event": "error", "data": {"detail": e.message}})
                continue
            registry.subscribe(conn_id, topic)
            await ws.send_json({"event": "subscribed", "data": {"topic": topic}})
            log.debug("socket %s %s %s", conn_id, action, topic)
    except WebSocketDisconnect:
        pass
    finally:
        registry.drop(conn_id)
        log.info("socket %s disconnected", conn_id)


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
