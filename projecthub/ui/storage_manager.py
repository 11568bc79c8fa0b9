"""
ProjectHub Storage Manager — view-model behind the project file browser.

Holds the browser's UI state (search text, filters, pending uploads, delete
confirmation) and derives the visible file list from the data context.
Rendering is left to the caller.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

from projecthub.engine.context import UserContext
from projecthub.engine.errors import ProjectHubError
from projecthub.engine.security import can_access_project, can_manage_project_files
from projecthub.models import File, UploadPayload

logger = logging.getLogger("projecthub.ui.storage_manager")

SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]

FILE_KINDS = {
    "jpg": "image",
    "jpeg": "image",
    "png": "image",
    "gif": "image",
    "svg": "image",
    "mp4": "video",
    "mov": "video",
    "avi": "video",
    "zip": "archive",
    "rar": "archive",
    "7z": "archive",
    "pdf": "pdf",
}


def format_file_size(size: int) -> str:
    """Human-readable size, binary units, at most two decimals ("1.5 KB")."""
    if size <= 0:
        return "0 Bytes"
    i = min(int(math.floor(math.log(size) / math.log(1024))), len(SIZE_UNITS) - 1)
    value = round(size / math.pow(1024, i), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[i]}"


def file_kind(file_type: str) -> str:
    """Icon family for a file extension; anything unknown is a document."""
    return FILE_KINDS.get((file_type or "").lower(), "document")


class StorageManager:
    """
    File browser state for one user, optionally pinned to one project.

    Without ``project_id`` the browser lists files of every project the user
    can access and uploads are disabled.
    """

    def __init__(self, data: Any, user: Optional[UserContext], project_id: Optional[str] = None):
        self.data = data
        self.user = user
        self.project_id = project_id

        # Filters
        self.search_term: str = ""
        self.filter_type: str = "all"
        self.filter_uploader: str = "all"

        # Upload / delete state
        self.pending_files: List[UploadPayload] = []
        self.is_saving: bool = False
        self.delete_confirm: Optional[str] = None
        self.error: str = ""

    # ── Derived lists ──

    def project_files(self) -> List[File]:
        """Files the user may see, before search and filters."""
        projects = {p.id: p for p in self.data.projects}
        if self.project_id:
            if not can_access_project(self.user, projects.get(self.project_id)):
                return []
            return [f for f in self.data.files if f.project_id == self.project_id]
        return [f for f in self.data.files if can_access_project(self.user, projects.get(f.project_id))]

    def filtered_files(self) -> List[File]:
        term = self.search_term.lower()
        result = []
        for file in self.project_files():
            if term and term not in file.filename.lower() and term not in file.uploader_name.lower():
                continue
            if self.filter_type != "all" and file.file_type != self.filter_type:
                continue
            if self.filter_uploader != "all" and file.uploader_name != self.filter_uploader:
                continue
            result.append(file)
        return result

    def unique_uploaders(self) -> List[str]:
        return list(dict.fromkeys(f.uploader_name for f in self.project_files()))

    def unique_file_types(self) -> List[str]:
        return list(dict.fromkeys(f.file_type for f in self.project_files()))

    def file_location(self, file: File) -> str:
        """``"<project> / <stage>"`` for stage files, else the project title."""
        project = self.data.get_project(file.project_id)
        if file.stage_id:
            stage = next((s for s in self.data.stages if s.id == file.stage_id), None)
            return f"{project.title if project else None} / {stage.name if stage else None}"
        return project.title if project else "Unknown Project"

    @property
    def can_manage_files(self) -> bool:
        """Upload and delete are offered only inside a project the user can access."""
        if self.user is None or not self.project_id:
            return False
        return can_manage_project_files(self.user, self.data.get_project(self.project_id))

    # ── Filters ──

    def set_search(self, term: str) -> None:
        self.search_term = term

    def set_filter_type(self, file_type: str) -> None:
        self.filter_type = file_type or "all"

    def set_filter_uploader(self, uploader: str) -> None:
        self.filter_uploader = uploader or "all"

    # ── Pending uploads ──

    def add_pending_files(self, payloads: List[UploadPayload]) -> None:
        self.pending_files = self.pending_files + list(payloads)

    def remove_pending_file(self, index: int) -> None:
        self.pending_files = [p for i, p in enumerate(self.pending_files) if i != index]

    async def save_pending_files(self) -> bool:
        """Upload every pending file; the list is kept when any upload fails."""
        if not self.pending_files or not self.project_id:
            return False
        self.is_saving = True
        self.error = ""
        try:
            uploader = self.user.name if self.user and self.user.name else "Unknown"
            await self.data.save_project_files(self.project_id, self.pending_files, uploader)
            self.pending_files = []
            return True
        except ProjectHubError as e:
            logger.error(f"Error saving files: {e}")
            self.error = "Error saving files. Please try again."
            return False
        finally:
            self.is_saving = False

    # ── Deletion ──

    def request_delete(self, file_id: str) -> None:
        self.delete_confirm = file_id

    def cancel_delete(self) -> None:
        self.delete_confirm = None

    async def confirm_delete(self) -> bool:
        if self.delete_confirm is None:
            return False
        self.error = ""
        try:
            await self.data.delete_file(self.delete_confirm)
        except ProjectHubError as e:
            logger.error(f"Error deleting file: {e}")
            self.error = "Error deleting file. Please try again."
            return False
        self.delete_confirm = None
        return True
