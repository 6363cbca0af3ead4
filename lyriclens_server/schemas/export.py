from pydantic import BaseModel, ConfigDict, Field


class InitExportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(alias="sessionId")


class RejectedFileInfo(BaseModel):
    filename: str
    code: str
    reason: str


class ChunkUploadResponse(BaseModel):
    success: bool = True
    count: int  # Files persisted by this request only
    rejected: list[RejectedFileInfo] = Field(default_factory=list)


class FinalizeExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    fps: int | None = Field(default=None, gt=0)


class YoutubeImportRequest(BaseModel):
    # Optional here so a missing URL is reported by the fetcher's own validation
    url: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    uptime: float
