"""
FastAPI application for the PokeDM engine
"""

import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pokedm.api.agent import router as agent_router
from pokedm.api.campaigns import router as campaigns_router
from pokedm.api.sessions import router as sessions_router
from pokedm.config import settings
from pokedm.errors import CanonFetchError, StorageError
from pokedm.schemas.validation import SessionValidationError
from pokedm.utils.logger import get_logger, setup_logging

setup_logging(level=settings.log_level, log_file=settings.log_file, include_timestamp=True)

logger = get_logger(__name__)

app = FastAPI(
    title="PokeDM Engine",
    description="Multi-agent narrative orchestration for a Pokémon tabletop adventure",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

logger.info("FastAPI application initialized")
logger.info(f"Model provider: {settings.model_provider}")
logger.info(f"Model name: {settings.model_name}")
logger.info(f"Storage provider: {settings.storage_provider}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next: Callable) -> Response:
    """Log every request with a correlation id and its duration"""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    request.state.request_id = request_id

    logger.info(
        f"[API] Request started: {request.method} {request.url.path}",
        extra={
            "component": "API",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
            "query_params": dict(request.query_params) if request.query_params else None,
        },
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            f"[API] Request failed: {request.method} {request.url.path} -> ERROR ({duration_ms:.2f}ms): {e}",
            extra={
                "component": "API",
                "request_id": request_id,
                "duration_ms": duration_ms,
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[API] Request completed: {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.2f}ms)",
        extra={
            "component": "API",
            "request_id": request_id,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


@app.exception_handler(SessionValidationError)
async def validation_error_handler(request: Request, exc: SessionValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "kind": "validation",
            "message": str(exc),
            "errors": [error.model_dump() for error in exc.errors],
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"[API] Storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "kind": "storage",
            "code": exc.code,
            "message": exc.message,
            "session_id": exc.session_id,
            "operation": exc.operation,
        },
    )


@app.exception_handler(CanonFetchError)
async def canon_fetch_error_handler(request: Request, exc: CanonFetchError):
    logger.warning(f"[API] Reference lookup failed on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"kind": "external", "message": exc.message, "canon_kind": exc.kind, "key": exc.key},
    )


app.include_router(agent_router, prefix="/agent", tags=["agent"])
app.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
app.include_router(campaigns_router, prefix="/campaigns", tags=["campaigns"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "PokeDM Engine", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    logger.debug("Health check endpoint called")
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(
        "pokedm.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
