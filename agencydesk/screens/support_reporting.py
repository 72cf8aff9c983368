from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any

from agencydesk.screens.aggregation import ratio
from agencydesk.screens.base import ScreenController
from agencydesk.screens.tickets import TICKET_PRIORITIES, TICKET_STATUSES
from agencydesk.store.client import FilterSpec


REPORT_RANGES = (7, 30, 90)


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def average_hours(tickets: Sequence[Mapping[str, Any]], field: str, *, status: str | None = None) -> float:
    spans = [
        _hours_between(ticket["created_at"], ticket[field])
        for ticket in tickets
        if ticket.get(field) and (status is None or ticket.get("status") == status)
    ]
    return round(sum(spans) / len(spans), 2) if spans else 0.0


def format_hours(hours: float) -> str:
    if hours < 1:
        return f"{round(hours * 60)}m"
    return f"{round(hours, 1)}h"


def ticket_stats(tickets: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    by_status = {status: sum(1 for ticket in tickets if ticket.get("status") == status) for status in TICKET_STATUSES}
    by_priority = {
        priority: sum(1 for ticket in tickets if ticket.get("priority") == priority) for priority in TICKET_PRIORITIES
    }
    resolution = average_hours(tickets, "resolved_at", status="resolved")
    first_response = average_hours(tickets, "first_response_at")
    done = by_status["resolved"] + by_status["closed"]
    return {
        "total": len(tickets),
        "by_status": by_status,
        "by_priority": by_priority,
        "resolution_rate": ratio(done, len(tickets)),
        "avg_resolution_hours": resolution,
        "avg_resolution_display": format_hours(resolution),
        "avg_first_response_hours": first_response,
        "avg_first_response_display": format_hours(first_response),
    }


def category_stats(tickets: Sequence[Mapping[str, Any]], categories: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    by_id = {category["id"]: category for category in categories}
    counts: dict[Any, int] = {}
    for ticket in tickets:
        if ticket.get("category_id") in by_id:
            counts[ticket["category_id"]] = counts.get(ticket["category_id"], 0) + 1
    return [
        {"name": by_id[category_id]["name"], "count": count, "color": by_id[category_id].get("color") or "#6B7280"}
        for category_id, count in counts.items()
    ]


def daily_stats(tickets: Sequence[Mapping[str, Any]], days: int, today: date) -> list[dict[str, Any]]:
    dates = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    daily = {day: {"date": day.isoformat(), "created": 0, "resolved": 0} for day in dates}
    for ticket in tickets:
        created = ticket["created_at"].date()
        if created in daily:
            daily[created]["created"] += 1
        resolved_at = ticket.get("resolved_at")
        if resolved_at and resolved_at.date() in daily:
            daily[resolved_at.date()]["resolved"] += 1
    return list(daily.values())


class SupportReportingController(ScreenController):
    screen_name = "support_reporting"
    entity_name = "report"
    load_error = "Failed to load support reports"

    def __init__(self, *args: Any, days: int = 30, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if days not in REPORT_RANGES:
            raise ValueError(f"Unsupported report range: {days}")
        self.days = days
        self.report: dict[str, Any] = {}

    async def set_days(self, days: int) -> None:
        if days not in REPORT_RANGES:
            raise ValueError(f"Unsupported report range: {days}")
        self.days = days
        await self.load()

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        since = self.clock() - timedelta(days=self.days)
        tickets, categories = await asyncio.gather(
            self.client.query("tickets", FilterSpec(gte={"created_at": since})),
            self.client.query("ticket_categories", FilterSpec()),
        )
        return tickets.raise_for_error().rows, self.rows_or_empty(categories, "ticket_categories")

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        tickets, categories = payload
        self.report = {
            "days": self.days,
            "stats": ticket_stats(tickets),
            "categories": category_stats(tickets, categories),
            "daily": daily_stats(tickets, self.days, self.clock().date()),
        }
        self.set_rows(tickets)
