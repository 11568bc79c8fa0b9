"""Stage comment tasks and project-wide comments."""

from __future__ import annotations

import logging
from typing import Optional

from projecthub.data.base import DataStoreBase
from projecthub.engine.errors import ProjectHubError, ValidationError
from projecthub.models import CommentTask, GlobalComment, new_id, utc_now

logger = logging.getLogger("projecthub.data.comments")

GLOBAL_COMMENT_SELECT = "*, author:profiles!global_comments_added_by_fkey(full_name)"
COMMENT_STATUSES = ("open", "in-progress", "done")


class CommentsMixin(DataStoreBase):

    async def add_comment_task(
        self,
        stage_id: str,
        project_id: str,
        text: str,
        added_by: str,
        author_name: str = "",
        author_role: str = "",
        status: str = "open",
        assigned_to: Optional[str] = None,
        deadline: Optional[str] = None,
    ) -> Optional[CommentTask]:
        """Add a comment task locally, then insert it; a rejected insert is rolled back."""
        task = CommentTask(
            id=new_id(),
            stage_id=stage_id,
            project_id=project_id,
            text=text,
            added_by=added_by,
            author_name=author_name,
            author_role=author_role,
            status=status,
            assigned_to=assigned_to,
            deadline=deadline,
            timestamp=utc_now(),
        )
        self.comment_tasks = self.comment_tasks + [task]

        if not self.has_backend:
            self._local_only("comment task")
            return task
        try:
            await self.backend.table("comment_tasks").insert(task.to_row()).execute()
            self._audit("create", "comment_tasks", task.id, optimistic=True)
            return task
        except ProjectHubError as e:
            logger.error(f"Error adding comment task: {e}")
            self._audit("create", "comment_tasks", task.id, optimistic=True, success=False, error=str(e))
            self.comment_tasks = self._without(self.comment_tasks, task.id)
            return None

    async def update_comment_task_status(self, task_id: str, status: str) -> None:
        if status not in COMMENT_STATUSES:
            raise ValidationError(
                f"Comment task status must be one of {COMMENT_STATUSES}, got '{status}'",
                table="comment_tasks",
                record_id=task_id,
            )
        existing = self._find(self.comment_tasks, task_id)
        self.comment_tasks = self._map(self.comment_tasks, task_id, lambda t: t.merged({"status": status}))

        if not self.has_backend:
            self._local_only("comment task status")
            return
        try:
            await self.backend.table("comment_tasks").update({"status": status}).eq("id", task_id).execute()
            self._audit("update", "comment_tasks", task_id, optimistic=True, fields_changed=["status"])
        except ProjectHubError as e:
            logger.error(f"Error updating comment task {task_id}: {e}")
            self._audit("update", "comment_tasks", task_id, optimistic=True, success=False, error=str(e))
            if existing is not None:
                self.comment_tasks = self._map(self.comment_tasks, task_id, lambda t: existing)

    async def load_global_comments(self) -> None:
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("global_comments").select(GLOBAL_COMMENT_SELECT).execute()
            self.global_comments = self._map_rows(response.data, GlobalComment.from_row)
            logger.info(f"Global comments loaded: {len(self.global_comments)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading global comments: {e}")

    async def add_global_comment(
        self,
        project_id: str,
        text: str,
        added_by: str,
        author_role: str,
    ) -> None:
        """
        Post a comment on the whole project.

        Raises:
            ValidationError when ``text`` is empty or whitespace.
            BackendError when the insert is rejected.
        """
        if not text or not text.strip():
            raise ValidationError("Comment text is required", table="global_comments")

        author = self._find(self.users, added_by)
        comment = GlobalComment(
            id=new_id(),
            project_id=project_id,
            text=text,
            added_by=added_by,
            author_name=author.name if author else "Unknown User",
            author_role=author_role,
            timestamp=utc_now(),
        )

        if not self.has_backend:
            self.global_comments = self.global_comments + [comment]
            self._local_only("global comment")
            return

        try:
            await self.backend.table("global_comments").insert({
                "project_id": project_id,
                "text": text,
                "added_by": added_by,
                "author_role": author_role,
                "timestamp": comment.timestamp,
            }).execute()
            self._audit("create", "global_comments")
        except ProjectHubError as e:
            logger.error(f"Error adding global comment: {e}")
            self._audit("create", "global_comments", success=False, error=str(e))
            raise
        await self.load_global_comments()

    def get_stage_comment_tasks(self, stage_id: str):
        return [t for t in self.comment_tasks if t.stage_id == stage_id]
