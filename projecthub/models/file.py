"""File metadata, download history and not-yet-persisted uploads."""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import Field

from projecthub.models.base import Record


class File(Record):
    """
    Metadata of an uploaded artifact.

    ``storage_path`` is set once the blob lives in the private bucket;
    downloads then go through a short-lived signed URL instead of
    ``file_url``.
    """

    id: str
    stage_id: Optional[str] = None
    project_id: str
    filename: str
    file_url: str = "#"
    storage_path: Optional[str] = None
    uploaded_by: str = ""
    uploader_name: str = ""
    timestamp: str = ""
    size: int = Field(default=0, ge=0)
    file_type: str = "unknown"
    category: str = Field(
        default="other",
        json_schema_extra={
            "choices": ["requirements", "assets", "deliverables", "contracts", "other"],
        },
    )
    description: str = ""
    download_count: int = Field(default=0, ge=0)
    last_downloaded: Optional[str] = None
    last_downloaded_by: Optional[str] = None
    is_archived: bool = False
    tags: List[str] = Field(default_factory=list)

    class Meta:
        table_name = "files"
        local_fields = set()


class DownloadHistory(Record):
    """One download of one file; kept in memory only."""

    id: str
    file_id: str
    downloaded_by: str
    downloader_name: str
    download_date: str
    file_name: str
    file_size: int = 0

    class Meta:
        table_name = ""
        local_fields = set()


@dataclass
class UploadPayload:
    """A file picked in the UI that has not been persisted yet."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        """Text after the last dot, as typed; the whole name when there is no dot."""
        return self.filename.rsplit(".", 1)[-1]
