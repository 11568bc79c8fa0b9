"""
Brochure review workflow — brochure projects, numbered pages, page comments,
approvals and the advisory page lock.

Lock states: unlocked → locked(holder) → unlocked. A plain lock call
overwrites whatever holder is recorded; unlock clears the holder without
checking who asks. ``exclusive=True`` adds a server-side ``is_locked =
false`` guard so a second concurrent locker gets PageLockedError instead of
silently taking over.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from projecthub.data.base import DataStoreBase
from projecthub.data.files import storage_object_path
from projecthub.engine.context import UserContext
from projecthub.engine.errors import (
    BackendNotConfiguredError,
    PageLockedError,
    ProjectHubError,
    ValidationError,
)
from projecthub.engine.logging import log, log_security_event
from projecthub.engine.security import filter_brochure_pages, filter_review_projects
from projecthub.models import (
    BrochurePage,
    BrochureProject,
    PageComment,
    UploadPayload,
    new_id,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger("projecthub.data.brochure")

BROCHURE_PROJECT_SELECT = "*, client:profiles!brochure_projects_client_id_fkey(full_name)"
BROCHURE_PAGE_SELECT = "*, locked_by_profile:profiles!brochure_pages_locked_by_fkey(full_name)"
PAGE_COMMENT_SELECT = "*, author:profiles!page_comments_added_by_fkey(full_name)"
APPROVAL_STATUSES = ("approved", "rejected")


def is_page_editable(page: Optional[BrochurePage], user: Optional[UserContext]) -> bool:
    """Editable when unlocked or locked by ``user`` themself."""
    if page is None or user is None:
        return False
    return not page.is_locked or page.locked_by == user.user_id


class BrochureMixin(DataStoreBase):

    # ── Loading ──

    async def load_brochure_projects(self) -> None:
        """Reload brochure projects visible to the current role."""
        if not self.has_backend:
            return
        try:
            query = self._scoped(
                "brochure_projects",
                self.backend.table("brochure_projects").select(BROCHURE_PROJECT_SELECT),
            )
            if query is None:
                self.brochure_projects = []
                return
            response = await query.execute()
            self.brochure_projects = self._map_rows(response.data, BrochureProject.from_row)
            logger.info(f"Brochure projects loaded: {len(self.brochure_projects)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading brochure projects: {e}")

    async def load_brochure_pages(self) -> None:
        """Reload pages, keeping only those of visible brochure projects for non-managers."""
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("brochure_pages").select(BROCHURE_PAGE_SELECT).execute()
            pages = self._map_rows(response.data, BrochurePage.from_row)
            self.brochure_pages = filter_brochure_pages(self.user, pages, self.brochure_projects)
            logger.info(f"Brochure pages loaded: {len(self.brochure_pages)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading brochure pages: {e}")

    async def load_page_comments(self) -> None:
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("page_comments").select(PAGE_COMMENT_SELECT).execute()
            self.page_comments = self._map_rows(response.data, PageComment.from_row)
            logger.info(f"Page comments loaded: {len(self.page_comments)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading page comments: {e}")

    # ── Images ──

    async def upload_brochure_image(self, payload: UploadPayload, project_id: str) -> str:
        """
        Store an image in the public brochure bucket and return its URL.

        Raises:
            BackendNotConfiguredError without a backend.
            BackendError when the upload is rejected.
        """
        if not self.has_backend:
            raise BackendNotConfiguredError("Backend not configured", operation="upload_brochure_image")
        path = storage_object_path(project_id, payload.extension)
        bucket = self.backend.storage.bucket(self.storage_config.image_bucket)
        try:
            await bucket.upload(path, payload.content, content_type=payload.content_type)
        except ProjectHubError as e:
            logger.error(f"Error uploading brochure image: {e}")
            raise
        return bucket.get_public_url(path)

    # ── Brochure projects ──

    async def create_brochure_project(
        self,
        project_id: str,
        client_id: str,
        client_name: str,
    ) -> Optional[BrochureProject]:
        """Create a draft brochure project; None when the insert fails."""
        brochure_id = new_id()
        if not self.has_backend:
            now = utc_now()
            created = BrochureProject(
                id=brochure_id,
                project_id=project_id,
                client_id=client_id,
                client_name=client_name,
                status="draft",
                created_at=now,
                updated_at=now,
            )
            self.brochure_projects = self.brochure_projects + [created]
            return created

        try:
            response = await self.backend.table("brochure_projects").insert({
                "id": brochure_id,
                "project_id": project_id,
                "client_id": client_id,
                "status": "draft",
            }).select("*").single().execute()
            created = BrochureProject.from_row({**response.data, "client": {"full_name": client_name}})
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error creating brochure project: {e}")
            self._audit("create", "brochure_projects", brochure_id, success=False, error=str(e))
            return None

        if self._find(self.brochure_projects, created.id) is None:
            self.brochure_projects = self.brochure_projects + [created]
        self._audit("create", "brochure_projects", created.id)
        await self.load_brochure_projects()
        return created

    async def update_brochure_project(self, brochure_id: str, updates: Dict[str, Any]) -> None:
        now = utc_now()
        if not self.has_backend:
            self.brochure_projects = self._map(
                self.brochure_projects, brochure_id, lambda bp: bp.merged({**updates, "updated_at": now})
            )
            return
        try:
            await self.backend.table("brochure_projects").update({
                "status": updates.get("status"),
                "updated_at": now,
            }).eq("id", brochure_id).execute()
        except ProjectHubError as e:
            logger.error(f"Error updating brochure project {brochure_id}: {e}")
            self._audit("update", "brochure_projects", brochure_id, success=False, error=str(e))
            return
        self._audit("update", "brochure_projects", brochure_id, fields_changed=["status"])
        await self.load_brochure_projects()

    def get_brochure_projects_for_review(self) -> List[BrochureProject]:
        return filter_review_projects(self.user, self.brochure_projects, self.projects)

    # ── Pages ──

    def get_brochure_page(self, page_id: str) -> Optional[BrochurePage]:
        return self._find(self.brochure_pages, page_id)

    def get_brochure_pages(self, brochure_id: str) -> List[BrochurePage]:
        """Pages of a brochure project ordered by page number."""
        return sorted(
            (p for p in self.brochure_pages if p.project_id == brochure_id),
            key=lambda p: p.page_number,
        )

    async def save_brochure_page(
        self,
        project_id: str,
        page_number: int,
        content: Dict[str, Any],
        approval_status: Optional[str] = None,
        is_locked: Optional[bool] = None,
    ) -> None:
        """
        Update the page at (project_id, page_number) if it exists, else
        insert it, then reload pages. Errors re-raise.
        """
        now = utc_now()
        if not self.has_backend:
            existing = next(
                (p for p in self.brochure_pages
                 if p.project_id == project_id and p.page_number == page_number),
                None,
            )
            if existing is not None:
                self.brochure_pages = self._map(
                    self.brochure_pages, existing.id,
                    lambda p: p.merged({"content": content, "updated_at": now}),
                )
            else:
                self.brochure_pages = self.brochure_pages + [BrochurePage(
                    id=new_id(),
                    project_id=project_id,
                    page_number=page_number,
                    content=content,
                    approval_status=approval_status or "pending",
                    is_locked=bool(is_locked),
                    created_at=now,
                    updated_at=now,
                )]
            return

        table = self.backend.table
        try:
            lookup = await (
                table("brochure_pages").select("id")
                .eq("project_id", project_id).eq("page_number", page_number)
                .maybe_single().execute()
            )
            if lookup.data:
                page_id = lookup.data["id"]
                await table("brochure_pages").update({
                    "content": content,
                    "approval_status": approval_status or "pending",
                    "updated_at": now,
                }).eq("id", page_id).execute()
                self._audit("update", "brochure_pages", page_id, fields_changed=["content", "approval_status"])
            else:
                await table("brochure_pages").insert({
                    "project_id": project_id,
                    "page_number": page_number,
                    "content": content,
                    "approval_status": approval_status or "pending",
                    "is_locked": bool(is_locked),
                }).execute()
                self._audit("create", "brochure_pages")
        except ProjectHubError as e:
            logger.error(f"Error saving brochure page {project_id}#{page_number}: {e}")
            self._audit("update", "brochure_pages", success=False, error=str(e))
            raise
        await self.load_brochure_pages()

    async def delete_brochure_page(self, project_id: str, page_number: int) -> None:
        """
        Delete a page, then renumber the later pages so numbering stays
        contiguous. Errors re-raise.
        """
        def remaining(pages: List[BrochurePage]) -> List[BrochurePage]:
            return [p for p in pages if not (p.project_id == project_id and p.page_number == page_number)]

        if not self.has_backend:
            self.brochure_pages = remaining(self.brochure_pages)
            return

        later = sorted(
            (p for p in self.brochure_pages if p.project_id == project_id and p.page_number > page_number),
            key=lambda p: p.page_number,
        )
        try:
            await (
                self.backend.table("brochure_pages").delete()
                .eq("project_id", project_id).eq("page_number", page_number).execute()
            )
            self.brochure_pages = remaining(self.brochure_pages)
            self._audit("delete", "brochure_pages", f"{project_id}#{page_number}")

            for offset, page in enumerate(later):
                new_number = page_number + offset
                if page.page_number == new_number:
                    continue
                await self.backend.table("brochure_pages").update({"page_number": new_number}).eq("id", page.id).execute()
                self.brochure_pages = self._map(
                    self.brochure_pages, page.id, lambda p, n=new_number: p.merged({"page_number": n})
                )
        except ProjectHubError as e:
            logger.error(f"Error deleting brochure page {project_id}#{page_number}: {e}")
            self._audit("delete", "brochure_pages", f"{project_id}#{page_number}", success=False, error=str(e))
            raise

    # ── Page comments ──

    async def add_page_comment(
        self,
        page_id: str,
        text: str,
        added_by: str,
        author_role: str,
        author_name: str = "Unknown User",
        marked_done: bool = False,
        action_type: str = "comment",
    ) -> None:
        if not self.has_backend:
            self.page_comments = self.page_comments + [PageComment(
                id=new_id(),
                page_id=page_id,
                text=text,
                added_by=added_by,
                author_name=author_name,
                author_role=author_role,
                timestamp=utc_now(),
                marked_done=marked_done,
                action_type=action_type,
            )]
            return
        try:
            await self.backend.table("page_comments").insert({
                "page_id": page_id,
                "text": text,
                "added_by": added_by,
                "author_role": author_role,
                "marked_done": marked_done,
                "action_type": action_type,
            }).execute()
        except ProjectHubError as e:
            logger.error(f"Error adding page comment on {page_id}: {e}")
            self._audit("create", "page_comments", success=False, error=str(e))
            return
        self._audit("create", "page_comments")
        await self.load_page_comments()

    def get_page_comments(self, page_id: str) -> List[PageComment]:
        """Comments on a page, oldest first."""
        return sorted(
            (c for c in self.page_comments if c.page_id == page_id),
            key=lambda c: parse_timestamp(c.timestamp),
        )

    async def mark_comment_done(self, comment_id: str) -> None:
        if not self.has_backend:
            self.page_comments = self._map(self.page_comments, comment_id, lambda c: c.merged({"marked_done": True}))
            return
        try:
            await self.backend.table("page_comments").update({"marked_done": True}).eq("id", comment_id).execute()
        except ProjectHubError as e:
            logger.error(f"Error marking comment {comment_id} done: {e}")
            return
        self._audit("update", "page_comments", comment_id, fields_changed=["marked_done"])
        await self.load_page_comments()

    async def approve_brochure_page(
        self,
        page_id: str,
        status: str,
        comment: Optional[str] = None,
    ) -> None:
        """
        Set a page's approval status and record the decision as an
        ``approval`` comment.
        """
        if status not in APPROVAL_STATUSES:
            raise ValidationError(
                f"Page approval must be one of {APPROVAL_STATUSES}, got '{status}'",
                table="brochure_pages",
                record_id=page_id,
            )
        now = utc_now()
        previous = self._find(self.brochure_pages, page_id)
        self.brochure_pages = self._map(
            self.brochure_pages, page_id, lambda p: p.merged({"approval_status": status, "updated_at": now})
        )

        if self.has_backend:
            try:
                await self.backend.table("brochure_pages").update({
                    "approval_status": status,
                    "updated_at": now,
                }).eq("id", page_id).execute()
                self._audit("update", "brochure_pages", page_id, optimistic=True, fields_changed=["approval_status"])
            except ProjectHubError as e:
                logger.error(f"Error saving approval of page {page_id}: {e}")
                self._audit("update", "brochure_pages", page_id, optimistic=True, success=False, error=str(e))
                if previous is not None:
                    self.brochure_pages = self._map(self.brochure_pages, page_id, lambda p: previous)

        name = self.user.name if self.user and self.user.name else "Manager"
        suffix = f": {comment}" if comment else ""
        if status == "approved":
            text = f"Page has been approved by {name}{suffix}"
        else:
            text = f"Page requires changes - {name}{suffix}"

        await self.add_page_comment(
            page_id=page_id,
            text=text,
            added_by=self.user.user_id if self.user else "",
            author_name=name,
            author_role=self.user.role if self.user else "manager",
            marked_done=False,
            action_type="approval",
        )

    # ── Locking ──

    def is_page_editable(self, page: Optional[BrochurePage], user: Optional[UserContext] = None) -> bool:
        return is_page_editable(page, user or self.user)

    async def lock_brochure_page(self, page_id: str, exclusive: bool = False) -> None:
        """
        Record the current user as the page's lock holder. No-op without a user.

        With ``exclusive`` the write only applies while the page is unlocked.

        Raises:
            PageLockedError when ``exclusive`` and the page is already locked.
        """
        user = self.user
        if user is None:
            return
        now = utc_now()
        values = {
            "is_locked": True,
            "locked_by": user.user_id,
            "locked_by_name": user.name,
            "locked_at": now,
            "updated_at": now,
        }

        if not self.has_backend:
            page = self._find(self.brochure_pages, page_id)
            if exclusive and page is not None and page.is_locked:
                self._lock_conflict(page_id, page.locked_by_name or page.locked_by)
            self.brochure_pages = self._map(self.brochure_pages, page_id, lambda p: p.merged(values))
            return

        query = self.backend.table("brochure_pages").update(values).eq("id", page_id)
        if exclusive:
            query = query.eq("is_locked", False).select("id")
        try:
            response = await query.execute()
        except ProjectHubError as e:
            logger.error(f"Error locking page {page_id}: {e}")
            self._audit("lock", "brochure_pages", page_id, success=False, error=str(e))
            return

        if exclusive and not response.data:
            await self.load_brochure_pages()
            page = self._find(self.brochure_pages, page_id)
            self._lock_conflict(page_id, page.locked_by_name if page else None)

        self._audit("lock", "brochure_pages", page_id, fields_changed=sorted(values))
        await self.load_brochure_pages()

    async def unlock_brochure_page(self, page_id: str) -> None:
        """Clear the lock holder, whoever holds it."""
        now = utc_now()
        values = {
            "is_locked": False,
            "locked_by": None,
            "locked_by_name": None,
            "locked_at": None,
            "updated_at": now,
        }
        if not self.has_backend:
            self.brochure_pages = self._map(self.brochure_pages, page_id, lambda p: p.merged(values))
            return
        try:
            await self.backend.table("brochure_pages").update(values).eq("id", page_id).execute()
        except ProjectHubError as e:
            logger.error(f"Error unlocking page {page_id}: {e}")
            self._audit("unlock", "brochure_pages", page_id, success=False, error=str(e))
            return
        self._audit("unlock", "brochure_pages", page_id, fields_changed=sorted(values))
        await self.load_brochure_pages()

    def _lock_conflict(self, page_id: str, holder: Optional[str]) -> None:
        log(log_security_event(
            "page_lock_conflict",
            "brochure",
            f"brochure_pages.{page_id}",
            role=self.user.role if self.user else None,
            reason=f"locked by {holder or 'another user'}",
        ))
        raise PageLockedError(
            f"Page is locked by {holder or 'another user'}",
            page_id=page_id,
            locked_by=holder,
            table="brochure_pages",
            record_id=page_id,
        )
