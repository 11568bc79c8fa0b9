"""Sales leads — plain optimistic CRUD."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from projecthub.data.base import DataStoreBase
from projecthub.engine.errors import ProjectHubError
from projecthub.models import Lead, new_id, utc_now

logger = logging.getLogger("projecthub.data.leads")

LEAD_COLUMNS = ("name", "email", "phone", "company", "source", "status", "notes", "updated_at")


class LeadsMixin(DataStoreBase):

    async def load_leads(self) -> None:
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("leads").select("*").order("created_at", desc=True).execute()
            self.leads = self._map_rows(response.data, Lead.model_validate)
            logger.info(f"Leads loaded: {len(self.leads)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading leads: {e}")

    async def create_lead(self, **fields: Any) -> Optional[Lead]:
        """Add a lead locally, then insert it; a rejected insert is rolled back."""
        now = utc_now()
        lead = Lead(**{**fields, "id": new_id(), "created_at": now, "updated_at": now})
        self.leads = [lead] + self.leads

        if not self.has_backend:
            self._local_only("lead")
            return lead
        try:
            await self.backend.table("leads").insert(lead.to_row()).execute()
            self._audit("create", "leads", lead.id, optimistic=True)
            return lead
        except ProjectHubError as e:
            logger.error(f"Error creating lead: {e}")
            self._audit("create", "leads", lead.id, optimistic=True, success=False, error=str(e))
            self.leads = self._without(self.leads, lead.id)
            return None

    async def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> None:
        existing = self._find(self.leads, lead_id)
        values = {**updates, "updated_at": utc_now()}
        self.leads = self._map(self.leads, lead_id, lambda l: l.merged(values))

        if not self.has_backend:
            self._local_only("lead update")
            return
        columns = {k: v for k, v in values.items() if k in LEAD_COLUMNS}
        try:
            await self.backend.table("leads").update(columns).eq("id", lead_id).execute()
            self._audit("update", "leads", lead_id, optimistic=True, fields_changed=sorted(columns))
        except ProjectHubError as e:
            logger.error(f"Error updating lead {lead_id}: {e}")
            self._audit("update", "leads", lead_id, optimistic=True, success=False, error=str(e))
            if existing is not None:
                self.leads = self._map(self.leads, lead_id, lambda l: existing)

    async def delete_lead(self, lead_id: str) -> None:
        previous = list(self.leads)
        self.leads = self._without(self.leads, lead_id)

        if not self.has_backend:
            self._local_only("lead deletion")
            return
        try:
            await self.backend.table("leads").delete().eq("id", lead_id).execute()
            self._audit("delete", "leads", lead_id, optimistic=True)
        except ProjectHubError as e:
            logger.error(f"Error deleting lead {lead_id}: {e}")
            self._audit("delete", "leads", lead_id, optimistic=True, success=False, error=str(e))
            self.leads = previous
