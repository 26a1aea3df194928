"""
Focus Flow – Session tracking API
Start with: uvicorn main:app --reload
"""
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import get_settings
from db import init_db
from errors import SessionError
from log import get_logger, log_error, set_request_id, setup_logging
from routers import sessions

settings = get_settings()
setup_logging(level=settings.log_level, json_logs=settings.json_logs)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(
        "Focus Flow API started",
        extra={"event_type": "startup", "cors_origins": settings.cors_origins},
    )
    yield
    logger.info("Focus Flow API stopped", extra={"event_type": "shutdown"})


app = FastAPI(
    title="Focus Flow API",
    description="Focus sessions with start/pause/stop tracking",
    version="0.2.0",
    lifespan=lifespan,
)

# Allow frontend (Next.js) to call this API
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    if exc.status_code >= 500:
        log_error(
            logger,
            "Session request failed",
            error=exc,
            extra={"path": request.url.path, "method": request.method},
        )
    else:
        logger.info(
            f"Session request rejected: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
                "error": exc.code,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.code},
    )


app.include_router(sessions.router)


@app.get("/health")
def health():
    """Check that the API is running. Frontend can call this first."""
    return {"status": "ok", "message": "Focus Flow API is running"}


@app.get("/")
def root():
    """Root welcome."""
    return {"app": "Focus Flow", "docs": "/docs"}
