from typing import Any

from pydantic import BaseModel, Field


class MergeUploadResponse(BaseModel):
    success: bool = True
    message: str = "Video uploaded successfully"
    merged: bool
    metadata_updated: bool
    metadata_error: str | None = None
    object_key: str | None = None
    request_id: str


class InspectionTaskResponse(BaseModel):
    id: Any = None
    name: str | None = None
    inspectionId: Any = None
    inspectionName: str = ""
    rating: str | None = None
    finding: str = ""
    group: str = ""
    groupSortOrder: int = 0
    inspectionTaskId: Any = None
    externalImages: list = Field(default_factory=list)


class InspectionsResponse(BaseModel):
    roId: Any = None
    roNumber: Any = None
    customer: str
    vehicle: str
    tasks: list[InspectionTaskResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    route: str | None = None
    service: str | None = None
    version: str
    ffmpeg_available: bool
    supabase_configured: bool
    temp_dir: str
    uptime_s: float | None = None
