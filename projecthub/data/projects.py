"""Projects and stages — loading, creation, stage approval and progress."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from projecthub.data.base import DataStoreBase
from projecthub.data.sample import sample_projects
from projecthub.engine.errors import ProjectHubError, RecordNotFoundError, ValidationError
from projecthub.models import STAGE_NAMES, Project, Stage, new_id, utc_now

logger = logging.getLogger("projecthub.data.projects")

PROJECT_COLUMNS = (
    "title",
    "description",
    "client_id",
    "deadline",
    "progress_percentage",
    "assigned_employees",
    "status",
    "priority",
)

PROJECT_SELECT = "*, client:profiles!projects_client_id_fkey(full_name)"


class ProjectsMixin(DataStoreBase):

    def set_projects(self, projects: List[Project]) -> None:
        """Replace the project collection and give new projects their stages."""
        self.projects = list(projects)
        self.ensure_stages()

    def ensure_stages(self) -> List[Stage]:
        """
        Give every project without stages one stage per STAGE_NAMES entry.

        Projects with at least one stage are left alone, so this runs at most
        once per project. Returns the stages created.
        """
        covered = {s.project_id for s in self.stages}
        created: List[Stage] = []
        for project in self.projects:
            if project.id in covered:
                continue
            for index, name in enumerate(STAGE_NAMES):
                created.append(Stage(
                    id=new_id(),
                    project_id=project.id,
                    name=name,
                    notes="",
                    progress_percentage=0,
                    approval_status="pending",
                    order=index,
                ))
            covered.add(project.id)
        if created:
            self.stages = self.stages + created
            logger.debug(f"Generated {len(created)} stages")
        return created

    # ── Access ──

    async def fetch_accessible_project_ids(self) -> Optional[List[str]]:
        """
        Ids of projects the current user may reach.

        None without a backend or a user; an empty list when the query fails.
        """
        if not self.has_backend or self.user is None:
            return None
        try:
            query = self._scoped("projects", self.backend.table("projects").select("id"))
            if query is None:
                return []
            response = await query.execute()
            return [row["id"] for row in (response.data or [])]
        except ProjectHubError as e:
            logger.error(f"Error computing accessible project ids for {self.user.role}: {e}")
            return []

    # ── Projects ──

    async def load_projects(self) -> None:
        """Reload projects; on failure fall back to the sample projects."""
        if not self.has_backend:
            return
        try:
            query = self._scoped("projects", self.backend.table("projects").select(PROJECT_SELECT))
            if query is None:
                self.set_projects([])
                return
            response = await query.execute()
            self.set_projects(self._map_rows(response.data, Project.from_row))
            logger.info(f"Projects loaded: {len(self.projects)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading projects, falling back to sample data: {e}")
            self.set_projects(sample_projects())

    async def create_project(
        self,
        title: str,
        client_id: Optional[str] = None,
        description: str = "",
        deadline: Optional[str] = None,
        assigned_employees: Optional[List[str]] = None,
        progress_percentage: int = 0,
        status: str = "active",
        priority: str = "medium",
        client_name: str = "Unknown Client",
    ) -> Optional[Project]:
        """
        Insert a project, then its default stages, then reload.

        Without a backend the project is added locally and returned.
        """
        values: Dict[str, Any] = {
            "title": title,
            "description": description,
            "client_id": client_id,
            "deadline": deadline,
            "progress_percentage": progress_percentage,
            "assigned_employees": list(assigned_employees or []),
            "status": status,
            "priority": priority,
        }

        if not self.has_backend:
            project = Project(id=new_id(), created_at=utc_now(), client_name=client_name, **values)
            self.set_projects(self.projects + [project])
            self._local_only("project")
            return project

        try:
            response = await self.backend.table("projects").insert(values).select().single().execute()
            created = Project.from_row({**response.data, "client": {"full_name": client_name}})

            stage_rows = [
                {
                    "project_id": created.id,
                    "name": name,
                    "notes": "",
                    "progress_percentage": 0,
                    "approval_status": "pending",
                    "order": index,
                }
                for index, name in enumerate(STAGE_NAMES)
            ]
            await self.backend.table("stages").insert(stage_rows).execute()
            self._audit("create", "projects", created.id)

            await self.load_projects()
            return created
        except ProjectHubError as e:
            logger.error(f"Error creating project: {e}")
            self._audit("create", "projects", success=False, error=str(e))
            raise

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        """Write the given project columns, then reload; errors re-raise."""
        if not self.has_backend:
            self.set_projects(self._map(self.projects, project_id, lambda p: p.merged(updates)))
            self._local_only("project update")
            return

        values = {k: v for k, v in updates.items() if k in PROJECT_COLUMNS}
        try:
            await self.backend.table("projects").update(values).eq("id", project_id).execute()
            self._audit("update", "projects", project_id, fields_changed=sorted(values))
            await self.load_projects()
        except ProjectHubError as e:
            logger.error(f"Error updating project {project_id}: {e}")
            self._audit("update", "projects", project_id, success=False, error=str(e))
            raise

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._find(self.projects, project_id)

    # ── Stages ──

    def get_project_stages(self, project_id: str) -> List[Stage]:
        return sorted((s for s in self.stages if s.project_id == project_id), key=lambda s: s.order)

    async def update_stage_approval(
        self,
        stage_id: str,
        status: str,
        comment: Optional[str] = None,
    ) -> None:
        """
        Approve or reject a stage. A comment becomes an open comment task
        attributed to the client.
        """
        if status not in ("approved", "rejected"):
            raise ValidationError(
                f"Stage approval must be 'approved' or 'rejected', got '{status}'",
                table="stages",
                record_id=stage_id,
            )
        stage = self._find(self.stages, stage_id)
        previous = stage.approval_status if stage else None
        self.stages = self._map(self.stages, stage_id, lambda s: s.merged({"approval_status": status}))

        if self.has_backend:
            try:
                await self.backend.table("stages").update({"approval_status": status}).eq("id", stage_id).execute()
                self._audit("update", "stages", stage_id, optimistic=True, fields_changed=["approval_status"])
            except ProjectHubError as e:
                logger.error(f"Error updating stage approval {stage_id}: {e}")
                self._audit("update", "stages", stage_id, optimistic=True, success=False, error=str(e))
                if previous is not None:
                    self.stages = self._map(
                        self.stages, stage_id, lambda s: s.merged({"approval_status": previous})
                    )
        else:
            self._local_only("stage approval")

        if comment and stage is not None:
            await self.add_comment_task(
                stage_id=stage_id,
                project_id=stage.project_id,
                text=comment,
                added_by="client",
                author_name="Client",
                author_role="client",
                status="open",
            )

    async def update_stage_progress(self, stage_id: str, progress: int) -> None:
        stage = self._find(self.stages, stage_id)
        if stage is None:
            raise RecordNotFoundError(f"Stage not found: {stage_id}", table="stages", record_id=stage_id)
        progress = max(0, min(100, int(progress)))
        previous = stage.progress_percentage
        self.stages = self._map(self.stages, stage_id, lambda s: s.merged({"progress_percentage": progress}))

        if not self.has_backend:
            self._local_only("stage progress")
            return
        try:
            await self.backend.table("stages").update({"progress_percentage": progress}).eq("id", stage_id).execute()
            self._audit("update", "stages", stage_id, optimistic=True, fields_changed=["progress_percentage"])
        except ProjectHubError as e:
            logger.error(f"Error updating stage progress {stage_id}: {e}")
            self._audit("update", "stages", stage_id, optimistic=True, success=False, error=str(e))
            self.stages = self._map(
                self.stages, stage_id, lambda s: s.merged({"progress_percentage": previous})
            )
