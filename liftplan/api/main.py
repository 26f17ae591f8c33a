"""
liftplan web API.

``create_app`` builds the FastAPI application around one EngineConfig.
The module-level ``app`` reads its configuration from the file named by
``LIFTPLAN_CONFIG`` (defaults when unset) and its allowed browser origins
from the comma-separated ``LIFTPLAN_CORS_ORIGINS``.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from liftplan.api.routes import periodization, selection, substitutes, workouts
from liftplan.config import EngineConfig, get_default_config
from liftplan.library import LibraryIntegrityError

logger = logging.getLogger(__name__)

API_NAME = "liftplan API"
API_VERSION = "0.1.0"
CONFIG_ENV = "LIFTPLAN_CONFIG"
CORS_ENV = "LIFTPLAN_CORS_ORIGINS"
DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]

ROUTERS = [
    (workouts.router, "Workouts"),
    (selection.router, "Selection"),
    (substitutes.router, "Substitutes"),
    (periodization.router, "Periodization"),
]


def config_from_env() -> EngineConfig:
    """Engine configuration named by LIFTPLAN_CONFIG, or the defaults."""
    path = os.environ.get(CONFIG_ENV)
    if not path:
        return get_default_config()
    logger.info("Loading engine configuration from %s", path)
    return EngineConfig.from_file(Path(path))


def origins_from_env() -> List[str]:
    raw = os.environ.get(CORS_ENV, "")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or DEV_ORIGINS


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


def _describe_validation_errors(exc: RequestValidationError) -> List[str]:
    # "body.profile.weight_kg: Input should be greater than 0"
    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def create_app(
    config: Optional[EngineConfig] = None, allowed_origins: Optional[List[str]] = None
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Engine configuration every route uses (LIFTPLAN_CONFIG or
            the defaults when omitted)
        allowed_origins: Browser origins allowed by CORS (LIFTPLAN_CORS_ORIGINS
            or the local dev server when omitted)

    Returns:
        Configured FastAPI application
    """
    application = FastAPI(
        title=API_NAME,
        description="Deterministic, explainable resistance-training session generation",
        version=API_VERSION,
    )
    application.state.engine_config = config if config is not None else config_from_env()

    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins if allowed_origins is not None else origins_from_env(),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    for router, tag in ROUTERS:
        application.include_router(router, prefix="/api", tags=[tag])

    @application.get("/")
    async def root() -> Dict[str, Any]:
        """Service name, version and the generation endpoints."""
        engine_config = application.state.engine_config
        return {
            "name": API_NAME,
            "version": API_VERSION,
            "policy_version": engine_config.policy_version.value,
            "block_length": engine_config.block_length,
            "endpoints": sorted(
                {route.path for route in application.routes if route.path.startswith("/api/")}
            ),
        }

    @application.get("/health")
    async def health_check() -> Dict[str, str]:
        return {"status": "healthy", "service": "liftplan-api"}

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, exc.detail, str(exc.detail))

    @application.exception_handler(LibraryIntegrityError)
    async def library_integrity_handler(request: Request, exc: LibraryIntegrityError):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid exercise library", str(exc))

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = _describe_validation_errors(exc)
        logger.debug("Rejected %s %s: %s", request.method, request.url.path, details)
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Invalid request",
            details[0] if details else "Request body failed validation",
            details=details,
        )

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("liftplan.api.main:app", host="127.0.0.1", port=8000, log_level="info")
