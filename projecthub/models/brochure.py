"""Brochure projects, pages and page comments."""

from typing import Any, Dict, Optional

from pydantic import Field

from projecthub.models.base import Record

REVIEW_STATUSES = ("ready_for_design", "in_design")


class BrochureProject(Record):
    id: str
    project_id: Optional[str] = None
    client_id: str
    client_name: str = "Unknown Client"
    status: str = Field(
        default="draft",
        json_schema_extra={"choices": ["draft", "ready_for_design", "in_design", "completed"]},
    )
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Meta:
        table_name = "brochure_projects"
        local_fields = {"client_name"}

    @classmethod
    def from_row(cls, row: dict) -> "BrochureProject":
        data = dict(row)
        client = data.pop("client", None) or {}
        data["client_name"] = client.get("full_name") or "Unknown Client"
        return cls.model_validate(data)

    @property
    def is_reviewable(self) -> bool:
        return self.status in REVIEW_STATUSES


class BrochurePage(Record):
    """
    One numbered page of a brochure project.

    ``project_id`` references the brochure project, not the client project.
    ``content`` holds ``body_content`` (HTML) and ``images`` (URL list).
    The lock fields are advisory: they gate the editing UI only.
    """

    id: str
    project_id: str
    page_number: int = Field(ge=1)
    content: Dict[str, Any] = Field(default_factory=dict)
    approval_status: str = Field(
        default="pending",
        json_schema_extra={"choices": ["pending", "approved", "rejected"]},
    )
    is_locked: bool = False
    locked_by: Optional[str] = None
    locked_by_name: Optional[str] = None
    locked_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Meta:
        table_name = "brochure_pages"
        local_fields = set()

    @classmethod
    def from_row(cls, row: dict) -> "BrochurePage":
        data = dict(row)
        holder = data.pop("locked_by_profile", None) or {}
        data["locked_by_name"] = holder.get("full_name") or data.get("locked_by_name")
        data["content"] = data.get("content") or {}
        data["is_locked"] = bool(data.get("is_locked"))
        return cls.model_validate(data)


class PageComment(Record):
    id: str
    page_id: str
    text: str
    added_by: str
    author_name: str = "Unknown User"
    author_role: str = ""
    timestamp: str = ""
    marked_done: bool = False
    action_type: str = Field(
        default="comment",
        json_schema_extra={"choices": ["comment", "approval"]},
    )

    class Meta:
        table_name = "page_comments"
        local_fields = {"author_name"}

    @classmethod
    def from_row(cls, row: dict) -> "PageComment":
        data = dict(row)
        author = data.pop("author", None) or {}
        data["author_name"] = author.get("full_name") or "Unknown User"
        data["marked_done"] = bool(data.get("marked_done"))
        data["action_type"] = data.get("action_type") or "comment"
        return cls.model_validate(data)
