"""Task and Meeting records."""

from typing import List, Optional

from pydantic import Field

from projecthub.models.base import Record


class Task(Record):
    """Free-standing work item inside a project."""

    id: str
    project_id: str
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    status: str = Field(
        default="open",
        json_schema_extra={"choices": ["open", "in-progress", "done"]},
    )
    priority: str = Field(
        default="medium",
        json_schema_extra={"choices": ["low", "medium", "high"]},
    )
    deadline: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Meta:
        table_name = "tasks"
        local_fields = set()


class Meeting(Record):
    id: str
    project_id: str
    title: str
    date: str
    time: str = ""
    attendees: List[str] = Field(default_factory=list)
    agenda: str = ""
    link: Optional[str] = None

    class Meta:
        table_name = "meetings"
        local_fields = set()
