"""User record — a profile row as the data layer sees it."""

from pydantic import Field

from projecthub.models.base import Record


class User(Record):
    """Profile of a manager, employee or client."""

    id: str
    name: str = Field(default="User", description="Display name")
    email: str = ""
    role: str = Field(
        default="client",
        json_schema_extra={"choices": ["manager", "employee", "client"]},
    )

    class Meta:
        table_name = "profiles"
        local_fields = set()

    @classmethod
    def from_profile(cls, row: dict) -> "User":
        """Map a ``profiles`` row; name falls back to email, then 'User'."""
        return cls(
            id=row["id"],
            name=row.get("full_name") or row.get("email") or "User",
            email=row.get("email") or "",
            role=row.get("role") or "client",
        )
