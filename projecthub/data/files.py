"""
Project files — metadata rows, private-bucket blobs, downloads.

The file list is mirrored into the local FileListStore after every
successful load or local mutation and read back only when the backend is
unreachable or unconfigured.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional

from projecthub.data.base import DataStoreBase
from projecthub.engine.errors import (
    BackendUnavailableError,
    ProjectHubError,
    RecordNotFoundError,
)
from projecthub.engine.security import can_access_project, filter_download_history
from projecthub.models import DownloadHistory, File, UploadPayload, new_id, parse_timestamp, utc_now

logger = logging.getLogger("projecthub.data.files")

FILE_METADATA_COLUMNS = ("filename", "category", "description", "is_archived", "tags", "stage_id")


def storage_object_path(project_id: str, extension: str) -> str:
    """``<project_id>/<epoch ms>-<random>.<ext>``"""
    return f"{project_id}/{int(time.time() * 1000)}-{secrets.token_hex(6)}.{extension}"


class FilesMixin(DataStoreBase):

    # ── Local fallback ──

    def _file_scope(self) -> Optional[str]:
        """Store key suffix: one list per signed-in user."""
        if self.user is None:
            return None
        return f"{self.user.role}:{self.user.user_id}"

    def _persist_files(self) -> None:
        if self.file_store is not None:
            self.file_store.save([f.model_dump(mode="json") for f in self.files], scope=self._file_scope())

    def _restore_files(self) -> bool:
        """Replace files from the local store; False when it holds nothing."""
        if self.file_store is None:
            return False
        stored = self.file_store.load(scope=self._file_scope())
        if stored is None:
            return False
        try:
            files = [File.model_validate(row) for row in stored]
        except ValueError as e:
            logger.warning(f"Stored file list unreadable: {e}")
            return False
        if self.user is not None and not self.user.is_manager:
            projects = {p.id: p for p in self.projects}
            files = [f for f in files if can_access_project(self.user, projects.get(f.project_id))]
        self.files = files
        logger.info(f"Files restored from local store: {len(self.files)}")
        return True

    # ── Loading ──

    async def load_files(self) -> None:
        """
        Reload file metadata, scoped to accessible projects for non-managers.

        Unreachable or unconfigured backend → local store; any other failure
        keeps the current list.
        """
        if not self.has_backend:
            self._restore_files()
            return
        try:
            query = self._scoped("files", self.backend.table("files").select("*"))
            if query is None:
                self.files = []
                return
            response = await query.execute()
            self.files = self._map_rows(response.data, File.from_row)
            self._persist_files()
            logger.info(f"Files loaded: {len(self.files)}")
        except BackendUnavailableError as e:
            logger.error(f"Backend unreachable loading files, using local store: {e}")
            self._restore_files()
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading files, keeping existing state: {e}")

    # ── Uploads ──

    async def upload_file(self, **fields: Any) -> Optional[File]:
        """Add a file record built from ``fields``, then insert it; rolled back if rejected."""
        file = File(**{**fields, "id": new_id(), "timestamp": utc_now()})
        self.files = self.files + [file]
        self._persist_files()

        if not self.has_backend:
            self._local_only("file")
            return file
        try:
            await self.backend.table("files").insert(file.to_row()).execute()
            self._audit("create", "files", file.id, optimistic=True)
            return file
        except ProjectHubError as e:
            logger.error(f"Error saving file {file.filename}: {e}")
            self._audit("create", "files", file.id, optimistic=True, success=False, error=str(e))
            self.files = self._without(self.files, file.id)
            self._persist_files()
            return None

    async def upload_file_from_input(
        self,
        stage_id: str,
        payload: UploadPayload,
        uploader_name: str,
    ) -> File:
        """Upload a picked file into the project of ``stage_id``."""
        stage = self._find(self.stages, stage_id)
        project_id = stage.project_id if stage else ""
        return await self._upload_to_project(project_id, stage_id, payload, uploader_name)

    async def save_project_files(
        self,
        project_id: str,
        payloads: List[UploadPayload],
        uploader_name: str,
    ) -> List[File]:
        """
        Upload a batch of pending files into a project, in order.

        Stops at the first failure (re-raised); files saved before it stay.
        """
        saved = []
        for payload in payloads:
            saved.append(await self._upload_to_project(project_id, None, payload, uploader_name))
        return saved

    async def _upload_to_project(
        self,
        project_id: str,
        stage_id: Optional[str],
        payload: UploadPayload,
        uploader_name: str,
    ) -> File:
        """
        Optimistic preview, blob upload, metadata insert. On failure the
        preview is removed and the error re-raised.
        """
        temp_id = new_id()
        preview = File(
            id=temp_id,
            stage_id=stage_id,
            project_id=project_id,
            filename=payload.filename,
            file_url=f"local://{temp_id}/{payload.filename}",
            uploaded_by=self.user.user_id if self.user else "",
            uploader_name=uploader_name,
            timestamp=utc_now(),
            size=payload.size,
            file_type=payload.extension.lower() or "unknown",
            category="other",
            description="",
            download_count=0,
            is_archived=False,
            tags=[],
        )
        self.files = self.files + [preview]

        if not self.has_backend:
            self._persist_files()
            self._local_only("file upload")
            return preview

        storage_path = storage_object_path(project_id, payload.extension)
        bucket = self.backend.storage.bucket(self.storage_config.file_bucket)
        try:
            await bucket.upload(storage_path, payload.content, content_type=payload.content_type)
        except ProjectHubError as e:
            logger.error(f"Error uploading {payload.filename} to storage: {e}")
            self._audit("create", "files", temp_id, optimistic=True, success=False, error=str(e))
            self.files = self._without(self.files, temp_id)
            raise

        saved = preview.merged({"id": new_id(), "storage_path": storage_path})
        try:
            await self.backend.table("files").insert(saved.to_row()).execute()
        except ProjectHubError as e:
            logger.error(f"Error saving metadata of {payload.filename}, removing stored object: {e}")
            self._audit("create", "files", temp_id, optimistic=True, success=False, error=str(e))
            self.files = self._without(self.files, temp_id)
            await self._remove_object(bucket, storage_path)
            raise

        self.files = self._map(self.files, temp_id, lambda f: saved)
        self._persist_files()
        self._audit("create", "files", saved.id, optimistic=True)
        return saved

    async def _remove_object(self, bucket: Any, storage_path: str) -> None:
        """Remove a stored object; a failure leaves an orphan and only warns."""
        try:
            await bucket.remove([storage_path])
        except ProjectHubError as e:
            logger.warning(f"Could not remove {bucket.name}/{storage_path}, object orphaned: {e}")

    # ── Deletion ──

    async def delete_file(self, file_id: str) -> None:
        """
        Remove a file row, then its stored blob. A rejected row delete is
        restored and re-raised; a failed blob removal only warns.
        """
        file = self._find(self.files, file_id)
        if file is None:
            raise RecordNotFoundError(f"File not found: {file_id}", table="files", record_id=file_id)
        previous = list(self.files)
        self.files = self._without(self.files, file_id)

        if not self.has_backend:
            self._persist_files()
            self._local_only("file deletion")
            return
        try:
            await self.backend.table("files").delete().eq("id", file_id).execute()
        except ProjectHubError as e:
            logger.error(f"Error deleting file {file_id}: {e}")
            self._audit("delete", "files", file_id, optimistic=True, success=False, error=str(e))
            self.files = previous
            raise
        if file.storage_path:
            await self._remove_object(self.backend.storage.bucket(self.storage_config.file_bucket), file.storage_path)
        self._persist_files()
        self._audit("delete", "files", file_id, optimistic=True)

    # ── Downloads ──

    async def download_file(self, file_id: str) -> Optional[str]:
        """
        Record a download and return the URL to fetch.

        Files in the private bucket get a signed URL (TTL from config); if
        signing fails the stored ``file_url`` is used. None when the file is
        unknown or nobody is signed in.
        """
        file = self._find(self.files, file_id)
        if file is None or self.user is None:
            return None

        download_url = file.file_url
        if self.has_backend and file.storage_path:
            try:
                download_url = await self.backend.storage.bucket(
                    self.storage_config.file_bucket
                ).create_signed_url(file.storage_path, self.storage_config.signed_url_ttl)
            except ProjectHubError as e:
                logger.error(f"Failed to create signed URL for {file_id}: {e}")

        now = utc_now()
        user = self.user
        self.files = self._map(self.files, file_id, lambda f: f.merged({
            "download_count": f.download_count + 1,
            "last_downloaded": now,
            "last_downloaded_by": user.user_id,
        }))
        self.download_history = self.download_history + [DownloadHistory(
            id=new_id(),
            file_id=file_id,
            downloaded_by=user.user_id,
            downloader_name=user.name,
            download_date=now,
            file_name=file.filename,
            file_size=file.size,
        )]
        self._persist_files()
        return download_url

    async def download_multiple_files(self, file_ids: List[str]) -> List[str]:
        """Download each known file in turn; returns the URLs in order."""
        if self.user is None:
            return []
        wanted = set(file_ids)
        urls = []
        for file in [f for f in self.files if f.id in wanted]:
            url = await self.download_file(file.id)
            if url is not None:
                urls.append(url)
        return urls

    def get_download_history(self) -> List[DownloadHistory]:
        """Role-filtered download history, newest first."""
        visible = filter_download_history(self.user, self.download_history, self.files, self.projects)
        return sorted(visible, key=lambda h: parse_timestamp(h.download_date), reverse=True)

    # ── Metadata ──

    async def update_file_metadata(self, file_id: str, metadata: Dict[str, Any]) -> None:
        """Patch file metadata locally, then remotely; rolled back if rejected."""
        existing = self._find(self.files, file_id)
        if existing is None:
            raise RecordNotFoundError(f"File not found: {file_id}", table="files", record_id=file_id)
        self.files = self._map(self.files, file_id, lambda f: f.merged(metadata))
        self._persist_files()

        values = {k: v for k, v in metadata.items() if k in FILE_METADATA_COLUMNS}
        if not self.has_backend or not values:
            return
        try:
            await self.backend.table("files").update(values).eq("id", file_id).execute()
            self._audit("update", "files", file_id, optimistic=True, fields_changed=sorted(values))
        except ProjectHubError as e:
            logger.error(f"Error updating file metadata {file_id}: {e}")
            self._audit("update", "files", file_id, optimistic=True, success=False, error=str(e))
            self.files = self._map(self.files, file_id, lambda f: existing)
            self._persist_files()

    def get_project_files(self, project_id: str) -> List[File]:
        return [f for f in self.files if f.project_id == project_id]
