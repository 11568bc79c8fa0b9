"""
ProjectHub User Context — who is looking at the data.

The signed-in user is carried in a ContextVar so log builders and view-models
can read it without threading it through every call. The data context keeps
its own reference as well and updates the ContextVar on every user change.

Usage:
    from projecthub.engine.context import UserContext, set_current_user, get_current_user
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from projecthub.engine.errors import AccessDeniedError

MANAGER = "manager"
EMPLOYEE = "employee"
CLIENT = "client"
ROLES = (MANAGER, EMPLOYEE, CLIENT)

current_user: ContextVar[Optional["UserContext"]] = ContextVar(
    "current_user", default=None
)


@dataclass
class UserContext:
    """
    The authenticated user as the data layer sees it.

    accessible_project_ids is None until computed, then the list of project
    ids the role may reach (empty list = none).
    """

    user_id: str
    name: str
    role: str  # "manager" | "employee" | "client"
    email: str = ""
    accessible_project_ids: Optional[List[str]] = field(default=None)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got '{self.role}'")

    @property
    def is_manager(self) -> bool:
        return self.role == MANAGER

    @property
    def is_employee(self) -> bool:
        return self.role == EMPLOYEE

    @property
    def is_client(self) -> bool:
        return self.role == CLIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "accessible_project_ids": self.accessible_project_ids,
        }


def set_current_user(user: Optional[UserContext]) -> None:
    """Set the current user for this task."""
    current_user.set(user)


def get_current_user() -> Optional[UserContext]:
    """Get the current user. Returns None if signed out."""
    return current_user.get()


def require_current_user() -> UserContext:
    """Get the current user or raise if nobody is signed in."""
    user = get_current_user()
    if user is None:
        raise AccessDeniedError("No signed-in user", operation="require_user")
    return user


def clear_current_user() -> None:
    """Clear the current user (sign-out)."""
    current_user.set(None)
