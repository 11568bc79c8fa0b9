"""
ProjectHub Security — role-scoped visibility.

Implements:
- Per-role project predicate: manager sees all, client sees own,
  employee sees assigned
- RowSecurityPolicy: query-level filters per table, registered as callables
  ``(user, query) -> query | None`` (None = nothing visible, skip the query)
- Client-side second pass for brochure pages, download history and
  reviewable brochure projects

Visibility is recomputed on every user change; there is no caching beyond
the accessible-project-id list held on the UserContext.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from projecthub.engine.context import CLIENT, EMPLOYEE, MANAGER, UserContext
from projecthub.engine.errors import AccessDeniedError

logger = logging.getLogger("projecthub.engine.security")

RowFilter = Callable[[UserContext, Any], Any]


# ---------------------------------------------------------------------------
# Project predicates
# ---------------------------------------------------------------------------

def can_access_project(user: Optional[UserContext], project: Any) -> bool:
    """Whether ``user`` may see ``project`` (a Project or None)."""
    if user is None or project is None:
        return False
    if user.role == MANAGER:
        return True
    if user.role == CLIENT:
        return project.client_id == user.user_id
    if user.role == EMPLOYEE:
        return user.user_id in (project.assigned_employees or [])
    return False


# Upload and delete follow the same rule as visibility.
can_manage_project_files = can_access_project


def visible_projects(user: Optional[UserContext], projects: Iterable[Any]) -> List[Any]:
    """Projects ``user`` may see, in input order."""
    return [p for p in projects if can_access_project(user, p)]


def assigned_project_ids(user: UserContext, projects: Iterable[Any]) -> List[str]:
    return [p.id for p in projects if user.user_id in (p.assigned_employees or [])]


def require_project_access(user: Optional[UserContext], project: Any) -> None:
    """Raise AccessDeniedError unless ``user`` may see ``project``."""
    if not can_access_project(user, project):
        raise AccessDeniedError(
            "Project not accessible",
            table="projects",
            record_id=getattr(project, "id", None),
            user_id=user.user_id if user else None,
            role=user.role if user else None,
        )


# ---------------------------------------------------------------------------
# Query-level row security
# ---------------------------------------------------------------------------

class RowSecurityPolicy:
    """
    Per-table row filters applied to backend queries before execution.

    Tables without a registered policy are returned unfiltered. A policy that
    returns None means the user can see nothing; callers skip the query and
    treat the result as empty.
    """

    def __init__(self):
        self._policies: Dict[str, RowFilter] = {}

    def register_policy(self, table: str, filter_fn: RowFilter) -> None:
        """
        Register a row-level filter for a table.

        Args:
            table: Backend table name (e.g., "projects").
            filter_fn: Callable(user, query) → filtered query or None.
        """
        self._policies[table] = filter_fn
        logger.info(f"Row security policy registered: {table}")

    def apply_filter(self, table: str, query: Any, user: Optional[UserContext]) -> Any:
        """
        Apply the table's filter to a query builder.

        Returns the original query if no policy is registered or no user is
        signed in (sign-in is enforced by the backend, not here).
        """
        policy = self._policies.get(table)
        if policy is None or user is None:
            return query
        try:
            return policy(user, query)
        except Exception as e:
            logger.error(f"Row security filter failed for {table}: {e}")
            raise AccessDeniedError(
                f"Row security policy error for {table}",
                table=table,
                user_id=user.user_id,
                role=user.role,
            ) from e

    def has_policy(self, table: str) -> bool:
        return table in self._policies

    @property
    def registered_policies(self) -> List[str]:
        return list(self._policies.keys())


def _accessible(user: UserContext) -> List[str]:
    return list(user.accessible_project_ids or [])


def projects_row_filter(user: UserContext, query: Any) -> Any:
    if user.role == CLIENT:
        return query.eq("client_id", user.user_id)
    if user.role == EMPLOYEE:
        return query.contains("assigned_employees", [user.user_id])
    return query


def brochure_projects_row_filter(user: UserContext, query: Any) -> Any:
    ids = _accessible(user)
    if user.role == CLIENT:
        if ids:
            return query.or_(f"client_id.eq.{user.user_id},project_id.in.({','.join(ids)})")
        return query.eq("client_id", user.user_id)
    if user.role == EMPLOYEE:
        if not ids:
            return None
        return query.in_("project_id", ids)
    return query


def files_row_filter(user: UserContext, query: Any) -> Any:
    if user.role == MANAGER:
        return query
    ids = _accessible(user)
    if not ids:
        return None
    return query.in_("project_id", ids)


def default_row_security() -> RowSecurityPolicy:
    """Policy with the projects, brochure_projects and files filters registered."""
    policy = RowSecurityPolicy()
    policy.register_policy("projects", projects_row_filter)
    policy.register_policy("brochure_projects", brochure_projects_row_filter)
    policy.register_policy("files", files_row_filter)
    return policy


# ---------------------------------------------------------------------------
# Client-side second pass
# ---------------------------------------------------------------------------

def filter_brochure_pages(
    user: Optional[UserContext],
    pages: Iterable[Any],
    brochure_projects: Iterable[Any],
) -> List[Any]:
    """Clients and employees keep only pages of brochure projects they can see."""
    pages = list(pages)
    if user is None or user.role == MANAGER:
        return pages
    allowed = {bp.id for bp in brochure_projects}
    return [p for p in pages if p.project_id in allowed]


def filter_download_history(
    user: Optional[UserContext],
    history: Iterable[Any],
    files: Iterable[Any],
    projects: Iterable[Any],
) -> List[Any]:
    """
    Managers see every entry, employees the entries of files in projects they
    are assigned to, everyone else nothing. Entries for unknown files drop.
    """
    if user is None or user.role not in (MANAGER, EMPLOYEE):
        return []
    files_by_id = {f.id: f for f in files}
    projects_by_id = {p.id: p for p in projects}

    visible = []
    for entry in history:
        file = files_by_id.get(entry.file_id)
        if file is None:
            continue
        if user.role == MANAGER:
            visible.append(entry)
            continue
        project = projects_by_id.get(file.project_id)
        if project is not None and user.user_id in (project.assigned_employees or []):
            visible.append(entry)
    return visible


def filter_review_projects(
    user: Optional[UserContext],
    brochure_projects: Iterable[Any],
    projects: Iterable[Any],
) -> List[Any]:
    """Reviewable brochure projects: all for managers, assigned for employees, own for clients."""
    if user is None:
        return []
    reviewable = [bp for bp in brochure_projects if bp.is_reviewable]
    if user.role == MANAGER:
        return reviewable
    if user.role == EMPLOYEE:
        assigned = set(assigned_project_ids(user, projects))
        return [bp for bp in reviewable if bp.project_id and bp.project_id in assigned]
    if user.role == CLIENT:
        return [bp for bp in reviewable if bp.client_id == user.user_id]
    return []
