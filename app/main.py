# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import auth as core_auth
from app.config import settings
from app.core.errors import VideoServiceError
from app.core.logging import setup_logging
from app.core.metrics import router_metrics
from app.domain.models.response import ApiError
from app.infrastructure.clients.auth_client import AuthClient
from app.middleware.observability import ObservabilityMiddleware
from app.routers import health as health_router
from app.routers import videos as videos_router

logger = logging.getLogger("videos")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    setup_logging()

    # inicializa e injeta no módulo de auth
    client = AuthClient(
        base_url=settings.auth_base_url,
        timeout_seconds=settings.auth_timeout_seconds,
        cache_ttl=settings.auth_cache_ttl_seconds,
    )
    core_auth.set_auth_client(client)
    app.state.auth_client = client

    try:
        yield
    finally:
        await client.aclose()
        core_auth.set_auth_client(None)


def _error(status_code: int, message: str) -> JSONResponse:
    body = ApiError(status=status_code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# --- App ---
app = FastAPI(
    title="Video Catalog Service",
    version="0.1.0",
    lifespan=lifespan,
    swagger_ui_parameters={"persistAuthorization": True},
)


@app.exception_handler(VideoServiceError)
async def video_service_error_handler(request: Request, exc: VideoServiceError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s: %s", type(exc).__name__, exc.message,
        extra={"path": request.url.path, "method": request.method, "status": exc.status_code},
    )
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    response = _error(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"Entrada inválida: {where} {first.get('msg', '')}".strip()
    return _error(400, message)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Observabilidade
app.add_middleware(ObservabilityMiddleware)

# Routers
app.include_router(videos_router.router)
app.include_router(health_router.router)
app.include_router(router_metrics)
