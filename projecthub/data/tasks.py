"""Tasks and meetings."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from projecthub.data.base import DataStoreBase
from projecthub.engine.errors import ProjectHubError
from projecthub.models import Meeting, Task, new_id, utc_now

logger = logging.getLogger("projecthub.data.tasks")

TASK_COLUMNS = ("title", "description", "assigned_to", "priority", "deadline", "status")


class TasksMixin(DataStoreBase):

    async def load_tasks(self) -> None:
        """Reload tasks; on failure keep the current collection."""
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("tasks").select("*").execute()
            self.tasks = self._map_rows(response.data, Task.from_row)
            logger.info(f"Tasks loaded: {len(self.tasks)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading tasks, keeping existing state: {e}")

    async def create_task(
        self,
        project_id: str,
        title: str,
        description: Optional[str] = None,
        assigned_to: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        deadline: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> None:
        """
        Insert a task (status defaults to open, priority to medium) and reload.

        Raises:
            ProjectHubError: "Failed to create task: <reason>".
        """
        if not self.has_backend:
            self.tasks = self.tasks + [Task(
                id=new_id(),
                project_id=project_id,
                title=title,
                description=description,
                assigned_to=assigned_to,
                created_by=created_by,
                status=status or "open",
                priority=priority or "medium",
                deadline=deadline,
                created_at=utc_now(),
            )]
            self._local_only("task")
            return

        row = {
            "project_id": project_id,
            "title": title,
            "description": description,
            "assigned_to": assigned_to,
            "status": status or "open",
            "priority": priority or "medium",
            "deadline": deadline or None,
        }
        try:
            response = await self.backend.table("tasks").insert(row).select().single().execute()
            self._audit("create", "tasks", (response.data or {}).get("id"))
        except ProjectHubError as e:
            logger.error(f"Error creating task: {e.to_json()}")
            self._audit("create", "tasks", success=False, error=str(e))
            raise ProjectHubError(
                f"Failed to create task: {e.message}", table="tasks", operation="create",
            ) from e
        await self.load_tasks()

    async def update_task_status(self, task_id: str, status: str) -> None:
        await self.update_task(task_id, {"status": status})

    async def update_task(self, task_id: str, updates: Dict[str, Any]) -> None:
        """Write the given task columns, then reload; errors re-raise."""
        if not self.has_backend:
            self.tasks = self._map(self.tasks, task_id, lambda t: t.merged(updates))
            self._local_only("task update")
            return

        values = {k: v for k, v in updates.items() if k in TASK_COLUMNS}
        try:
            await self.backend.table("tasks").update(values).eq("id", task_id).execute()
            self._audit("update", "tasks", task_id, fields_changed=sorted(values))
        except ProjectHubError as e:
            logger.error(f"Error updating task {task_id}: {e}")
            self._audit("update", "tasks", task_id, success=False, error=str(e))
            raise
        await self.load_tasks()

    async def delete_task(self, task_id: str) -> None:
        if not self.has_backend:
            self.tasks = self._without(self.tasks, task_id)
            self._local_only("task deletion")
            return
        try:
            await self.backend.table("tasks").delete().eq("id", task_id).execute()
            self._audit("delete", "tasks", task_id)
        except ProjectHubError as e:
            logger.error(f"Error deleting task {task_id}: {e}")
            self._audit("delete", "tasks", task_id, success=False, error=str(e))
            raise
        await self.load_tasks()

    def get_project_tasks(self, project_id: str) -> List[Task]:
        return [t for t in self.tasks if t.project_id == project_id]

    # ── Meetings ──

    async def schedule_meeting(
        self,
        project_id: str,
        title: str,
        date: str,
        time: str = "",
        attendees: Optional[List[str]] = None,
        agenda: str = "",
        link: Optional[str] = None,
    ) -> Optional[Meeting]:
        meeting = Meeting(
            id=new_id(),
            project_id=project_id,
            title=title,
            date=date,
            time=time,
            attendees=list(attendees or []),
            agenda=agenda,
            link=link,
        )
        self.meetings = self.meetings + [meeting]
        if not self.has_backend:
            self._local_only("meeting")
            return meeting
        try:
            await self.backend.table("meetings").insert(meeting.to_row()).execute()
            self._audit("create", "meetings", meeting.id, optimistic=True)
            return meeting
        except ProjectHubError as e:
            logger.error(f"Error scheduling meeting: {e}")
            self._audit("create", "meetings", meeting.id, optimistic=True, success=False, error=str(e))
            self.meetings = self._without(self.meetings, meeting.id)
            return None
