"""ProjectHub records — pydantic models of every backend row."""

from projecthub.models.base import Record, new_id, parse_timestamp, utc_now
from projecthub.models.brochure import (
    REVIEW_STATUSES,
    BrochurePage,
    BrochureProject,
    PageComment,
)
from projecthub.models.comment import CommentTask, GlobalComment
from projecthub.models.file import DownloadHistory, File, UploadPayload
from projecthub.models.lead import Lead
from projecthub.models.project import STAGE_NAMES, Project, Stage
from projecthub.models.task import Meeting, Task
from projecthub.models.user import User

__all__ = [
    "Record",
    "new_id",
    "utc_now",
    "parse_timestamp",
    "User",
    "Project",
    "Stage",
    "STAGE_NAMES",
    "CommentTask",
    "GlobalComment",
    "Task",
    "Meeting",
    "File",
    "DownloadHistory",
    "UploadPayload",
    "BrochureProject",
    "BrochurePage",
    "PageComment",
    "REVIEW_STATUSES",
    "Lead",
]
