from typing import Annotated, Optional

from fastapi import Depends, Request

from scenepipe.config import Settings, get_settings
from scenepipe.render.engine import FFmpegRunner
from scenepipe.services.asset_service import AssetService
from scenepipe.services.job_processors import JobProcessors
from scenepipe.services.job_service import JobService
from scenepipe.services.media_service import MediaService


def build_job_service(
    settings: Optional[Settings] = None,
    runner: Optional[FFmpegRunner] = None,
    media: Optional[MediaService] = None,
    assets: Optional[AssetService] = None,
) -> JobService:
    """Wire the job service with its processors."""
    settings = settings or get_settings()
    processors = JobProcessors(
        media=media or MediaService(settings),
        assets=assets or AssetService(settings),
        runner=runner or FFmpegRunner(settings),
        settings=settings,
    )
    return JobService(processors.handlers(), settings=settings)


def get_job_service(request: Request) -> JobService:
    return request.app.state.job_service


def get_asset_service(request: Request) -> AssetService:
    return request.app.state.asset_service


def get_runner(request: Request) -> FFmpegRunner:
    return request.app.state.runner


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


JobServiceDep = Annotated[JobService, Depends(get_job_service)]
AssetServiceDep = Annotated[AssetService, Depends(get_asset_service)]
RunnerDep = Annotated[FFmpegRunner, Depends(get_runner)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
