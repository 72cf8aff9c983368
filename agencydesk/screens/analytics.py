from __future__ import annotations

import asyncio
import random
from typing import Any

from agencydesk.screens import aggregation
from agencydesk.screens.base import ScreenController
from agencydesk.store.client import FilterSpec


class AnalyticsController(ScreenController):
    """CRM analytics charts for a selectable time range. Reloads whenever the range changes."""

    screen_name = "crm_analytics"
    entity_name = "analytics"
    load_error = "Failed to load analytics data"

    def __init__(self, *args: Any, time_range: str = aggregation.DEFAULT_TIME_RANGE, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if time_range not in aggregation.TIME_RANGES:
            raise ValueError(f"Unknown time range: {time_range}")
        self.time_range = time_range
        self.series: dict[str, Any] = {}

    async def set_time_range(self, time_range: str) -> None:
        if time_range not in aggregation.TIME_RANGES:
            raise ValueError(f"Unknown time range: {time_range}")
        self.time_range = time_range
        await self.load()

    async def fetch(self) -> dict[str, Any]:
        today = self.clock().date()
        start = aggregation.range_start(self.time_range, today)
        since = {"created_at": start.isoformat()}
        leads, customers, invoices, stages, activities = await asyncio.gather(
            self.client.query("leads", FilterSpec(gte=since)),
            self.client.query("profiles", FilterSpec(eq={"role": "customer"}, gte=since)),
            self.client.query("invoices", FilterSpec(gte=since)),
            self.client.query("pipeline_stages", FilterSpec(eq={"is_active": True}, order_by="stage_order")),
            self.client.query("lead_activities", FilterSpec(gte=since)),
        )
        return {
            "buckets": aggregation.month_buckets(start, today),
            "leads": leads.raise_for_error().rows,
            "customers": customers.raise_for_error().rows,
            "invoices": invoices.raise_for_error().rows,
            "stages": self.rows_or_empty(stages, "pipeline_stages"),
            "activities": self.rows_or_empty(activities, "lead_activities"),
        }

    def apply(self, payload: dict[str, Any]) -> None:
        buckets = payload["buckets"]
        leads = payload["leads"]
        customers = payload["customers"]
        activity_counts = aggregation.activity_counts(payload["activities"])

        series: dict[str, Any] = {
            "time_range": self.time_range,
            "summary": aggregation.summary(leads, customers),
            "conversion_trend": aggregation.conversion_trend(leads, customers, buckets),
            "lead_sources": aggregation.lead_sources(leads),
            "pipeline_funnel": aggregation.pipeline_funnel(leads, payload["stages"]),
            "revenue_forecast": aggregation.revenue_forecast(payload["invoices"], leads, buckets),
            "activity_metrics": activity_counts,
        }
        if self.settings.analytics_synthetic_series:
            rng = random.Random(self.settings.analytics_seed)
            series["deal_velocity"] = aggregation.synthetic_deal_velocity(rng)
            series["activity_effectiveness"] = aggregation.synthetic_activity_effectiveness(activity_counts, rng)
            series["sales_rep_performance"] = aggregation.synthetic_sales_rep_performance(customers)

        self.series = series
        self.set_rows(leads)

    def export_csv(self) -> str:
        return aggregation.conversion_trend_csv(self.series.get("conversion_trend", []))
