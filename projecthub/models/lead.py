"""Sales lead record."""

from typing import Optional

from pydantic import Field

from projecthub.models.base import Record


class Lead(Record):
    id: str
    name: str
    email: str = ""
    phone: Optional[str] = None
    company: Optional[str] = None
    source: Optional[str] = None
    status: str = Field(
        default="new",
        json_schema_extra={"choices": ["new", "contacted", "qualified", "converted", "lost"]},
    )
    notes: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Meta:
        table_name = "leads"
        local_fields = set()
