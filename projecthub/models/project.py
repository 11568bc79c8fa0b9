"""Project and Stage records."""

from typing import List, Optional

from pydantic import Field

from projecthub.models.base import Record

# Canonical ordered phases; every project carries exactly one stage per name.
STAGE_NAMES = ["Planning", "Design", "Development", "Testing", "Deployment"]


class Project(Record):
    """
    A client engagement.

    Owned by ``client_id``; visible to employees listed in
    ``assigned_employees``. ``client_name`` is joined from profiles on load.
    """

    id: str
    title: str = Field(max_length=200)
    description: str = ""
    client_id: Optional[str] = None
    client_name: str = "Unknown Client"
    assigned_employees: List[str] = Field(default_factory=list)
    deadline: Optional[str] = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    status: str = Field(
        default="active",
        json_schema_extra={"choices": ["active", "completed", "on-hold"]},
    )
    priority: str = Field(
        default="medium",
        json_schema_extra={"choices": ["low", "medium", "high"]},
    )
    created_at: Optional[str] = None

    class Meta:
        table_name = "projects"
        local_fields = {"client_name"}

    @classmethod
    def from_row(cls, row: dict) -> "Project":
        data = dict(row)
        client = data.pop("client", None) or {}
        data["client_name"] = client.get("full_name") or "Unknown Client"
        data["description"] = data.get("description") or ""
        data["assigned_employees"] = data.get("assigned_employees") or []
        if data.get("progress_percentage") is None:
            data["progress_percentage"] = 0
        return cls.model_validate(data)


class Stage(Record):
    """One named phase of a project with its own progress and approval."""

    id: str
    project_id: str
    name: str
    notes: str = ""
    progress_percentage: int = Field(default=0, ge=0, le=100)
    approval_status: str = Field(
        default="pending",
        json_schema_extra={"choices": ["pending", "approved", "rejected"]},
    )
    order: int = 0

    class Meta:
        table_name = "stages"
        local_fields = set()
