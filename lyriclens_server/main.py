import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lyriclens_server.api import export, imports
from lyriclens_server.config import get_settings
from lyriclens_server.constants.error_codes import get_error_spec
from lyriclens_server.exceptions import ExportServerError, InternalError
from lyriclens_server.schemas.export import HealthResponse
from lyriclens_server.services.session_store import SessionStore

settings = get_settings()
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: session directories never survive a restart
    store = SessionStore(Path(settings.temp_dir))
    store.root.mkdir(parents=True, exist_ok=True)
    if settings.purge_temp_on_startup:
        removed = store.purge()
        if removed:
            logger.info("[Server] Purged %d stale session(s)", removed)
    logger.info("[Server] Temp directory: %s", store.root)
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "VALIDATION_ERROR",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        413: "FILE_TOO_LARGE",
        500: "INTERNAL_ERROR",
    }
    return mapping.get(status_code, "HTTP_ERROR")


def _error_body(code: str, message: str) -> dict:
    return {
        "success": False,
        "error": message,
        "code": code,
        "retryable": get_error_spec(code).get("retryable", False),
    }


@app.exception_handler(ExportServerError)
async def export_error_handler(request: Request, exc: ExportServerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[Error] %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("[Error] %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as 400 with the common error body."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(_http_error_code(exc.status_code), str(exc.detail)),
    )


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content=InternalError().to_dict())


# Routers
app.include_router(export.router, prefix="/api/export", tags=["export"])
app.include_router(imports.router, prefix="/api/import", tags=["import"])


@app.get("/api/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", uptime=round(time.monotonic() - _started_at, 3))


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("[Server] Export server running on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
