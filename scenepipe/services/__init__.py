from scenepipe.services.asset_service import AssetService
from scenepipe.services.job_service import JobKind, JobService, JobState
from scenepipe.services.media_service import MediaService
from scenepipe.services.progress_stream import ProgressEvent, ProgressPhase, ProgressStream

__all__ = [
    "AssetService",
    "MediaService",
    "JobService",
    "JobKind",
    "JobState",
    "ProgressStream",
    "ProgressEvent",
    "ProgressPhase",
]
