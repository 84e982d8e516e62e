from scenepipe.schemas.envelope import ApiResponse, ErrorInfo
from scenepipe.schemas.job import CompressImageRequest, CompressVideoRequest, FontInfo, HealthResponse

__all__ = [
    "ApiResponse",
    "ErrorInfo",
    "CompressVideoRequest",
    "CompressImageRequest",
    "FontInfo",
    "HealthResponse",
]
