from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from agencydesk.screens import aggregation
from agencydesk.screens.base import ScreenController
from agencydesk.screens.pipeline import lead_display_name
from agencydesk.store.client import FilterSpec


RECENT_ACTIVITY_LIMIT = 10
TOP_SOURCE_LIMIT = 5


class CrmDashboardController(ScreenController):
    """Stat cards first (count-only queries), then top sources and recent activity."""

    screen_name = "crm_dashboard"
    entity_name = "dashboard"
    load_error = "Failed to load CRM dashboard"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.stats: dict[str, Any] = {}
        self.top_sources: list[dict[str, Any]] = []
        self.recent_activities: list[dict[str, Any]] = []

    async def fetch(self) -> dict[str, int]:
        month_start = self.clock().date().replace(day=1).isoformat()
        total, this_month, converted = await asyncio.gather(
            self.client.query("leads", FilterSpec(head=True)),
            self.client.query("leads", FilterSpec(gte={"created_at": month_start}, head=True)),
            self.client.query("leads", FilterSpec(eq={"converted_to_customer": True}, head=True)),
        )
        return {
            "total_leads": total.raise_for_error().count or 0,
            "new_this_month": self.count_or_zero(this_month, "leads"),
            "converted_leads": self.count_or_zero(converted, "leads"),
        }

    def apply(self, payload: dict[str, int]) -> None:
        self.stats = {
            **payload,
            "conversion_rate": aggregation.ratio(payload["converted_leads"], payload["total_leads"]),
            "pipeline_value": Decimal("0"),
        }
        self.top_sources = []
        self.recent_activities = []
        self.set_rows([])

    async def fetch_stats(self, rows: list[dict[str, Any]]) -> dict[str, Any]:
        leads, activities = await asyncio.gather(
            self.client.query("leads", FilterSpec(order_by="created_at", descending=True)),
            self.client.query(
                "lead_activities",
                FilterSpec(order_by="created_at", descending=True, limit=RECENT_ACTIVITY_LIMIT),
            ),
        )
        lead_rows = self.rows_or_empty(leads, "leads")
        activity_rows = self.rows_or_empty(activities, "lead_activities")
        names = {lead["id"]: lead_display_name(lead) for lead in lead_rows}
        return {
            "pipeline_value": aggregation.open_pipeline_value(lead_rows),
            "top_sources": aggregation.lead_sources(lead_rows)[:TOP_SOURCE_LIMIT],
            "recent_activities": [
                {**activity, "lead_name": names.get(activity["lead_id"], "Unknown lead")} for activity in activity_rows
            ],
        }

    def apply_stats(self, stats: dict[str, Any]) -> None:
        self.stats = {**self.stats, "pipeline_value": stats["pipeline_value"]}
        self.top_sources = stats["top_sources"]
        self.recent_activities = stats["recent_activities"]
