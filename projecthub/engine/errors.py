"""
ProjectHub Error Hierarchy — Structured exceptions for the data-access layer.

Every error carries its context as keyword arguments and serializes to JSON
for the structured log pipeline.

Hierarchy:
    ProjectHubError
    ├── AccessDeniedError          — Role may not perform the action
    ├── ValidationError            — Input validation failed
    ├── BackendError               — Remote store rejected a call
    │   └── BackendUnavailableError — Remote store unreachable
    ├── BackendNotConfiguredError  — Operation needs a backend, none configured
    ├── RecordNotFoundError        — Referenced record missing from local state
    ├── AccountError               — Sign-up failed (user-facing message)
    ├── PageLockedError            — Exclusive page lock held by someone else
    └── ConfigError                — Configuration error
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ProjectHubError(Exception):
    """
    Base error for all ProjectHub failures.
    All context is kept on the instance and serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.table: Optional[str] = context.get("table")
        self.record_id: Optional[str] = context.get("record_id")
        self.operation: Optional[str] = context.get("operation")
        self.user_id: Optional[str] = context.get("user_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "table": self.table,
            "record_id": self.record_id,
            "operation": self.operation,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("table", "record_id", "operation", "user_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.table:
            parts.append(f"table={self.table}")
        if self.record_id:
            parts.append(f"record_id={self.record_id}")
        return " | ".join(parts)


class AccessDeniedError(ProjectHubError):
    """The current role may not see or mutate the target record."""

    def __init__(self, message: str, **context: Any):
        self.role: Optional[str] = context.get("role")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["role"] = self.role
        return d


class ValidationError(ProjectHubError):
    """
    Input validation failed (empty text, oversize upload, bad status).
    Includes field-level error details when available.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class BackendError(ProjectHubError):
    """The hosted backend rejected a query, write, storage or auth call."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        self.code: Optional[str] = context.get("code")
        self.details: Optional[str] = context.get("details")
        self.hint: Optional[str] = context.get("hint")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        d["code"] = self.code
        d["details"] = self.details
        d["hint"] = self.hint
        return d


class BackendUnavailableError(BackendError):
    """Network failure — the backend could not be reached at all."""
    pass


class BackendNotConfiguredError(ProjectHubError):
    """Backend URL or key missing; the operation has no local fallback."""
    pass


class RecordNotFoundError(ProjectHubError):
    """Record id not present in the in-memory collection."""
    pass


class AccountError(ProjectHubError):
    """
    Account creation failed. ``message`` is safe to show to the user;
    the raw remote message is kept in ``remote_message``.
    """

    def __init__(self, message: str, **context: Any):
        self.remote_message: Optional[str] = context.get("remote_message")
        super().__init__(message, **context)


class PageLockedError(ProjectHubError):
    """An exclusive lock request found the page already locked."""

    def __init__(self, message: str, **context: Any):
        self.page_id: Optional[str] = context.get("page_id")
        self.locked_by: Optional[str] = context.get("locked_by")
        super().__init__(message, **context)


class ConfigError(ProjectHubError):
    """Configuration error — invalid projecthub.yaml or environment."""
    pass
