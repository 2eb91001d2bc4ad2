from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inkseal_api.core.errors import APIError
from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.core.request_context import get_request_id
from inkseal_api.routers.annotations import router as annotations_router
from inkseal_api.routers.flatten import router as flatten_router
from inkseal_api.routers.health import router as health_router
from inkseal_api.routers.signatures import router as signatures_router
from inkseal_api.settings import get_settings


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("inkseal_api")

DEV_ORIGINS = (
    "http://localhost:1420",
    "http://127.0.0.1:1420",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


def _cors_origins() -> list[str]:
    settings = get_settings()
    if settings.WEB_ORIGIN:
        return [origin.strip() for origin in settings.WEB_ORIGIN.split(",") if origin.strip()]
    if settings.INKSEAL_ENV.lower() == "production":
        return []
    return list(DEV_ORIGINS)


app = FastAPI(title="InkSeal API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-InkSeal-Drawn", "X-InkSeal-Skipped", "X-InkSeal-Font-Fallbacks"],
)


# -----------------------------------------------------------------------------
# Error responses: {"error", "message", "details", "request_id"}
# -----------------------------------------------------------------------------
def _error_response(
    request_id: str,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": message, "details": details, "request_id": request_id},
        headers={"x-request-id": request_id},
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    request_id = get_request_id(request)
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "API error method=%s path=%s request_id=%s code=%s details=%s",
        request.method,
        request.url.path,
        request_id,
        exc.code,
        exc.details,
    )
    return _error_response(request_id, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = get_request_id(request)
    logger.info("Validation error method=%s path=%s request_id=%s", request.method, request.url.path, request_id)
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return _error_response(request_id, 422, "validation_error", "Invalid request payload", details)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = get_request_id(request)
    logger.error(
        "Unhandled exception method=%s path=%s request_id=%s\n%s",
        request.method,
        request.url.path,
        request_id,
        traceback.format_exc(),
    )
    return _error_response(request_id, 500, "internal_error", "Internal server error", {"path": request.url.path})


@app.on_event("startup")
async def log_startup_config():
    settings = get_settings()
    registry = get_flatten_config().registry
    missing = [family for family in registry.families() if not registry.is_available(family)]
    logger.info(
        "InkSeal API starting env=%s storage_driver=%s font_dir=%s",
        settings.INKSEAL_ENV,
        settings.INKSEAL_STORAGE_DRIVER,
        settings.font_dir,
    )
    if missing:
        logger.warning("Signature fonts missing families=%s; Helvetica will be used", ",".join(missing))


app.include_router(health_router)
app.include_router(signatures_router)
app.include_router(annotations_router)
app.include_router(flatten_router)
