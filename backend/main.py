"""FastAPI app exposing article jobs over HTTP.

Start with ``python backend/run.py`` or ``uvicorn backend.main:app``.
"""

import hmac
import logging
import sys
import time
from collections import defaultdict, deque
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Repo root on sys.path so ``agp`` imports when launched from backend/
sys.path.insert(0, str(Path(__file__).parent.parent))

from agp import __version__
from agp.config import get_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Article Generation Pipeline API",
    description="Multi-agent article generation with checkpointed, resumable jobs.",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

UNAUTHENTICATED = ("/health", "/api/health", "/api", "/api/docs", "/api/redoc", "/api/openapi.json")

# Job-creating requests allowed per client in a sliding window
WRITE_WINDOW_S = 60.0
WRITE_LIMIT = 30
_writes: dict[str, deque[float]] = defaultdict(deque)


def _error(status_code: int, detail: str, **headers: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers or None)


@app.middleware("http")
async def require_token(request: Request, call_next):
    """Check ``Authorization: Bearer <AGP_API_TOKEN>`` on API routes when a token is configured."""
    token = settings.agp_api_token
    path = request.url.path.rstrip("/") or "/"
    open_path = path in UNAUTHENTICATED or path.startswith(("/api/docs", "/api/redoc"))
    if not token or request.method == "OPTIONS" or open_path or not path.startswith("/api/"):
        return await call_next(request)

    scheme, _, presented = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not presented:
        return _error(401, "Authentication required", **{"WWW-Authenticate": "Bearer"})
    if not hmac.compare_digest(presented.strip().encode(), token.encode()):
        return _error(401, "Invalid token", **{"WWW-Authenticate": "Bearer"})
    return await call_next(request)


@app.middleware("http")
async def limit_writes(request: Request, call_next):
    """Per-client cap on POST/PUT/DELETE; reads are never limited."""
    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return await call_next(request)

    client = request.client.host if request.client else "unknown"
    now = time.monotonic()
    window = _writes[client]
    while window and now - window[0] >= WRITE_WINDOW_S:
        window.popleft()
    if len(window) >= WRITE_LIMIT:
        logger.warning("Write limit reached for %s", client)
        return _error(429, "Too many requests; try again in a minute")
    window.append(now)
    return await call_next(request)


# Registered last, so it is the outermost layer and 401/429 replies get CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info("CORS origins: %s", settings.cors_origin_list)


class HealthResponse(BaseModel):
    status: str
    version: str
    storage: str
    data_dir: str


@app.get("/health", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        version=__version__,
        storage="postgres" if settings.agp_database_url else "file",
        data_dir=str(settings.data_dir),
    )


@app.get("/api/")
async def index():
    return {"service": "agp", "version": __version__, "docs": "/api/docs"}


from backend.routes import articles  # noqa: E402

app.include_router(articles.router, prefix="/api", tags=["articles"])
