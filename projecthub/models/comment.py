"""Stage comment tasks and project-wide comments."""

from typing import Optional

from pydantic import Field

from projecthub.models.base import Record


class CommentTask(Record):
    """Review comment on a stage that doubles as an actionable item."""

    id: str
    stage_id: str
    project_id: str
    text: str
    added_by: str
    author_name: str = ""
    author_role: str = ""
    status: str = Field(
        default="open",
        json_schema_extra={"choices": ["open", "in-progress", "done"]},
    )
    assigned_to: Optional[str] = None
    deadline: Optional[str] = None
    timestamp: str = ""

    class Meta:
        table_name = "comment_tasks"
        local_fields = set()


class GlobalComment(Record):
    id: str
    project_id: str
    text: str
    added_by: str
    author_name: str = "Unknown User"
    author_role: str = ""
    timestamp: str = ""

    class Meta:
        table_name = "global_comments"
        local_fields = {"author_name"}

    @classmethod
    def from_row(cls, row: dict) -> "GlobalComment":
        data = dict(row)
        author = data.pop("author", None) or {}
        data["author_name"] = author.get("full_name") or "Unknown User"
        return cls.model_validate(data)
