import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .db import close_mongo_connection, connect_to_mongo, is_connected
from .integrations import cloudinary as cld
from .jobs.queue import queue_service
from .readmodels import event_stream_handler
from .redis_bus import start_consumer as redis_bus_start_consumer, stop as redis_bus_stop
from .routers import (
    admin,
    auth,
    chat,
    discovery,
    matches,
    presence,
    push,
    subscription,
    swipes,
    uploads,
    users,
)
from .utils.http import api_error

LOGGER = logging.getLogger("uvicorn.error")

app = FastAPI(title="Dating App API", default_response_class=ORJSONResponse)
settings = get_settings()

# CSV list from CORS_ORIGINS, else FRONTEND_URL
_origins_env = os.getenv("CORS_ORIGINS") or settings.frontend_url
_allow_origins = [o.strip() for o in _origins_env.split(",") if o.strip()]
print(f"[CORS] allow_origins={_allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
    allow_credentials=True,
)
app.add_middleware(GZipMiddleware, minimum_size=512)

_SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "800"))


# Simple slow-request logger
@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    t0 = time.time()
    response = await call_next(request)
    dt = (time.time() - t0) * 1000
    if dt >= _SLOW_REQUEST_MS:
        print(f"[perf] slow request {request.method} {request.url.path} {int(dt)}ms status={response.status_code}")
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        extra = dict(detail)
        body = api_error(str(extra.pop("message", "Error")), **extra)
    else:
        body = api_error(str(detail))
    return ORJSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return ORJSONResponse(api_error("Validation failed", errors=errors), status_code=400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return ORJSONResponse(
        api_error("Internal server error", error="INTERNAL_SERVER_ERROR"),
        status_code=500,
    )


@app.on_event("startup")
async def startup():
    await connect_to_mongo()
    # Start Redis pub/sub listener for read models and cache invalidations (optional)
    if get_settings().redis_pubsub_enabled:
        await redis_bus_start_consumer(event_stream_handler)
        print("[Events] Redis pub/sub listener started")
    else:
        print("[Events] Redis pub/sub disabled")

    print(f"[Jobs] enabled={get_settings().jobs_enabled} prefix={get_settings().queue_prefix}")

    if cld.is_enabled():
        cld.ensure_configured()
        info = cld.get_status()
        print(
            f"[Cloudinary] configured={bool(info.get('configured'))} cloud={info.get('cloudName') or 'unknown'} via_url={'yes' if info.get('usingUrl') else 'no'}"
        )
    else:
        print("[Cloudinary] not configured")


@app.on_event("shutdown")
async def shutdown():
    await close_mongo_connection()
    await redis_bus_stop()
    queue_service.close()


# Routers
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(users.router, prefix="/api")
app.include_router(swipes.router, prefix="/api")
app.include_router(matches.router, prefix="/api")
app.include_router(chat.router, prefix="/api")
app.include_router(discovery.router, prefix="/api")
app.include_router(presence.router, prefix="/api")
app.include_router(subscription.router, prefix="/api")
app.include_router(uploads.router, prefix="/api", tags=["uploads"])
app.include_router(push.router, prefix="/api", tags=["push"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/")
async def root():
    return {"status": "dating-api-ok"}


@app.get("/api/health/db")
async def db_health():
    return {
        "mongo": "connected" if is_connected() else "disconnected",
        "db": str(get_settings().mongo_db),
    }
