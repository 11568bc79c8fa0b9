"""
ProjectHub Data Base — shared state and helpers for the data-context mixins.

Each mixin (projects, tasks, files, …) reads and writes the collections
declared here. Collections are plain lists of records, replaced wholesale on
every load and patched in place by optimistic mutations.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, TypeVar

from projecthub.engine.cache import FileListStore
from projecthub.engine.config import StorageConfig
from projecthub.engine.context import UserContext
from projecthub.engine.logging import log, log_record_operation
from projecthub.engine.security import RowSecurityPolicy, default_row_security
from projecthub.models import (
    BrochurePage,
    BrochureProject,
    CommentTask,
    DownloadHistory,
    File,
    GlobalComment,
    Lead,
    Meeting,
    PageComment,
    Project,
    Stage,
    Task,
    User,
)

logger = logging.getLogger("projecthub.data")

R = TypeVar("R")


class DataStoreBase:
    """State container shared by every mixin of DataContext."""

    def __init__(
        self,
        backend: Any = None,
        feed: Any = None,
        file_store: Optional[FileListStore] = None,
        storage_config: Optional[StorageConfig] = None,
        row_security: Optional[RowSecurityPolicy] = None,
        profile_delay: float = 1.0,
    ):
        self.backend = backend
        self.feed = feed
        self.file_store = file_store
        self.storage_config = storage_config or StorageConfig()
        self.row_security = row_security or default_row_security()
        self.profile_delay = profile_delay
        self.user: Optional[UserContext] = None

        self.projects: List[Project] = []
        self.stages: List[Stage] = []
        self.comment_tasks: List[CommentTask] = []
        self.global_comments: List[GlobalComment] = []
        self.users: List[User] = []
        self.files: List[File] = []
        self.tasks: List[Task] = []
        self.meetings: List[Meeting] = []
        self.brochure_projects: List[BrochureProject] = []
        self.brochure_pages: List[BrochurePage] = []
        self.page_comments: List[PageComment] = []
        self.leads: List[Lead] = []
        self.download_history: List[DownloadHistory] = []

    # ── Backend helpers ──

    @property
    def has_backend(self) -> bool:
        return self.backend is not None

    def _scoped(self, table: str, query: Any) -> Any:
        """Apply the table's row-security filter; None means nothing visible."""
        return self.row_security.apply_filter(table, query, self.user)

    def _local_only(self, what: str) -> None:
        logger.warning(f"Backend not configured - {what} kept locally only")

    def _audit(
        self,
        operation: str,
        table: str,
        record_id: Optional[str] = None,
        optimistic: bool = False,
        success: bool = True,
        error: Optional[str] = None,
        fields_changed: Optional[List[str]] = None,
    ) -> None:
        log(log_record_operation(
            operation,
            table,
            record_id=record_id,
            fields_changed=fields_changed,
            optimistic=optimistic,
            success=success,
            error=error,
            user_id=self.user.user_id if self.user else None,
        ))

    # ── Collection helpers ──

    @staticmethod
    def _find(collection: List[R], record_id: str) -> Optional[R]:
        for item in collection:
            if getattr(item, "id", None) == record_id:
                return item
        return None

    @staticmethod
    def _map(collection: List[R], record_id: str, fn: Callable[[R], R]) -> List[R]:
        """Copy of ``collection`` with the matching record replaced by fn(record)."""
        return [fn(item) if getattr(item, "id", None) == record_id else item for item in collection]

    @staticmethod
    def _without(collection: List[R], record_id: str) -> List[R]:
        return [item for item in collection if getattr(item, "id", None) != record_id]

    @staticmethod
    def _map_rows(rows: Any, parse: Callable[[dict], R]) -> List[R]:
        return [parse(row) for row in (rows or [])]
