import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from scenepipe.api import assets, jobs, media
from scenepipe.api.deps import RunnerDep, build_job_service
from scenepipe.config import Settings, get_settings
from scenepipe.constants.error_codes import get_error_spec
from scenepipe.exceptions import ScenePipeError, ValidationFailedError
from scenepipe.render.engine import FFmpegRunner
from scenepipe.schemas.envelope import ApiResponse, ErrorInfo
from scenepipe.schemas.job import HealthResponse
from scenepipe.services.asset_service import AssetService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_ERROR",
    }
    return mapping.get(status_code, "HTTP_ERROR")


def _error_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    envelope = ApiResponse(success=False, message=error.message, error=error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope))


def _error_info(code: str, message: str) -> ErrorInfo:
    spec = get_error_spec(code)
    return ErrorInfo(
        code=code,
        message=message,
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )


async def scenepipe_exception_handler(request: Request, exc: ScenePipeError) -> JSONResponse:
    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.to_error_info())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422) with the envelope format."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    error = ValidationFailedError(message)
    return _error_response(error.status_code, error.to_error_info())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, _error_info(_http_error_code(exc.status_code), str(exc.detail)))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(500, _error_info("INTERNAL_ERROR", "Internal server error"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        Path(settings.output_dir).mkdir(parents=True, exist_ok=True)
        Path(settings.download_dir).mkdir(parents=True, exist_ok=True)
        if not hasattr(app.state, "job_service"):
            app.state.runner = FFmpegRunner(settings)
            app.state.asset_service = AssetService(settings)
            app.state.job_service = build_job_service(
                settings, runner=app.state.runner, assets=app.state.asset_service
            )
        logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")
        yield
        # Shutdown
        await app.state.job_service.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ScenePipeError, scenepipe_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Routers
    app.include_router(media.router, prefix="/api/media", tags=["media"])
    app.include_router(jobs.router, prefix="/api/job", tags=["jobs"])
    app.include_router(assets.router, prefix="/api/assets", tags=["assets"])

    app.mount("/outputs", StaticFiles(directory=settings.output_dir, check_dir=False), name="outputs")

    @app.get("/health", response_model=HealthResponse)
    async def health_check(runner: RunnerDep) -> HealthResponse:
        ffmpeg_ok = await runner.is_available()
        return HealthResponse(
            status="healthy" if ffmpeg_ok else "degraded",
            version=settings.app_version,
            ffmpeg=ffmpeg_ok,
        )

    return app


configure_logging(get_settings())
app = create_app()
