"""Record base — shared helpers for every backend row model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict


def new_id() -> str:
    """Locally generated identifier for optimistic rows."""
    return str(uuid.uuid4())


def utc_now() -> str:
    """Current time as an ISO-8601 string, the wire format of every timestamp."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO timestamp for sorting; missing or bad values sort first."""
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Record(BaseModel):
    """
    Base for rows mirrored from the backend.

    Unknown columns (joined relations, server-only fields) are ignored on
    load. Subclasses name their table in ``Meta.table_name`` and list fields
    that exist only client-side in ``Meta.local_fields``.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    class Meta:
        table_name: str = ""
        local_fields: Set[str] = set()

    @classmethod
    def table(cls) -> str:
        return cls.Meta.table_name

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        return cls.model_validate(row)

    def to_row(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Dump as a backend row, without client-only fields."""
        return self.model_dump(
            mode="json",
            exclude=set(getattr(self.Meta, "local_fields", set())),
            exclude_none=exclude_none,
        )

    def merged(self, updates: Dict[str, Any]):
        """Copy with ``updates`` applied; unknown keys are dropped."""
        known = {k: v for k, v in updates.items() if k in type(self).model_fields}
        return self.model_copy(update=known)
