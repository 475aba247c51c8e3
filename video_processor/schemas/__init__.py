from video_processor.schemas.envelope import ErrorResponse
from video_processor.schemas.video import (
    HealthResponse,
    InspectionsResponse,
    InspectionTaskResponse,
    MergeUploadResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "InspectionsResponse",
    "InspectionTaskResponse",
    "MergeUploadResponse",
]
