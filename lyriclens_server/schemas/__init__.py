from lyriclens_server.schemas.export import (
    ChunkUploadResponse,
    FinalizeExportRequest,
    HealthResponse,
    InitExportResponse,
    RejectedFileInfo,
    YoutubeImportRequest,
)

__all__ = [
    "ChunkUploadResponse",
    "FinalizeExportRequest",
    "HealthResponse",
    "InitExportResponse",
    "RejectedFileInfo",
    "YoutubeImportRequest",
]
