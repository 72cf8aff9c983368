from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from agencydesk.errors import NotFound
from agencydesk.screens.base import BulkResult, ScreenController
from agencydesk.screens.tickets import customer_name
from agencydesk.store.client import FilterSpec


PROJECT_STATUSES = ("pending", "in_progress", "completed", "on_hold", "cancelled")


class ProjectsController(ScreenController):
    """Customer projects joined with the owning profile."""

    screen_name = "projects"
    entity_name = "project"
    search_fields = ("title", "customer_first_name", "customer_last_name")

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        projects = await self.client.query(
            "projects",
            FilterSpec(order_by="created_at", descending=True, limit=self.settings.large_list_limit),
        )
        rows = projects.raise_for_error().rows
        customer_ids = sorted({row["customer_id"] for row in rows}, key=str)
        if not customer_ids:
            return rows, []
        profiles = await self.client.query("profiles", FilterSpec(in_={"id": customer_ids}))
        return rows, self.rows_or_empty(profiles, "profiles")

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        projects, profiles = payload
        by_id = {profile["id"]: profile for profile in profiles}
        rows = []
        for project in projects:
            profile = by_id.get(project["customer_id"]) or {}
            rows.append(
                {
                    **project,
                    "customer_name": customer_name(profile or None),
                    "customer_first_name": profile.get("first_name"),
                    "customer_last_name": profile.get("last_name"),
                    "customer_company": profile.get("company_name") or "Individual",
                }
            )
        self.set_rows(rows)

    def _project(self, project_id: Any) -> dict[str, Any]:
        for project in self.rows:
            if str(project["id"]) == str(project_id):
                return project
        raise NotFound("Project", project_id)

    def _check_status(self, status: str) -> None:
        if status not in PROJECT_STATUSES:
            self.require_valid({"status": f"Status must be one of: {', '.join(PROJECT_STATUSES)}"})

    async def update_status(self, project_id: Any, status: str) -> None:
        self._check_status(status)
        project = self._project(project_id)
        await self.run_mutation(
            "update_status",
            lambda: self.client.mutate("projects", "update", {"status": status}, match={"id": project["id"]}),
            success=f"Project {project['title']} marked as {status.replace('_', ' ')}",
        )

    async def bulk_update_status(self, project_ids: Sequence[Any], status: str) -> list[BulkResult]:
        self._check_status(status)
        return await self.run_bulk(
            "bulk_status",
            project_ids,
            lambda project_id: self.client.mutate("projects", "update", {"status": status}, match={"id": project_id}),
            success=f"Updated {len(project_ids)} projects",
        )
