# Backend/app/main.py
from __future__ import annotations

# --- ensure project root is on sys.path so `api.*`, `app.*` and `services.*` are importable ---
import sys
from pathlib import Path
THIS_FILE = Path(__file__).resolve()
BACKEND_ROOT = THIS_FILE.parents[1]  # .../Backend
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
# -------------------------------------------------------------------------

from dotenv import load_dotenv
load_dotenv(dotenv_path=".env")
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# --- Logging & request-id ---
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import accept_request_id, clear_request_id, set_request_id

from api.routers.news import router as news_router
from api.routers.resolve_image import router as resolve_image_router

configure_logging(service_name="api", level=settings.LOG_LEVEL)

app = FastAPI(
    title="TLDR News Proxy",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

ALLOWED_METHODS = ["GET", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Accept"]

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    **CORS_HEADERS,
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
}


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = accept_request_id(request.headers.get("x-request-id"))
        set_request_id(req_id)

        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


class PreflightMiddleware(BaseHTTPMiddleware):
    """Every OPTIONS request short-circuits with 204 and the CORS headers."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=PREFLIGHT_HEADERS)
        return await call_next(request)


# --- CORS ---
# Starlette runs middleware in reverse order of registration: the last one
# added is outermost. Preflight must be outermost so OPTIONS never reaches
# CORSMiddleware (which would answer 200).
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=ALLOWED_METHODS,
    allow_headers=ALLOWED_HEADERS,
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(PreflightMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = dict(exc.headers or {})
    headers.update(CORS_HEADERS)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"}, headers=CORS_HEADERS)

# --- Health endpoints ---
@app.get("/")
async def root():
    return {"ok": True, "app": "TLDR News Proxy", "message": "Up & running"}

@app.head("/")
async def root_head():
    return Response(status_code=200)

@app.get("/health")
async def health():
    return {"ok": True}

# --- Routers ---
# Served both bare and under /api, which is where the frontend calls them.
app.include_router(news_router)
app.include_router(resolve_image_router)
app.include_router(news_router, prefix="/api")
app.include_router(resolve_image_router, prefix="/api")
