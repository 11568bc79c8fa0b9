"""ProjectHub Engine — configuration, errors, logging, user context, security, cache."""

from projecthub.engine.context import UserContext, get_current_user, set_current_user  # noqa: F401
from projecthub.engine.errors import ProjectHubError  # noqa: F401

__all__ = [
    "UserContext",
    "get_current_user",
    "set_current_user",
    "ProjectHubError",
]
