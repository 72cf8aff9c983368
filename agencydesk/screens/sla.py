from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


NO_SLA = "none"
ON_TIME = "ok"
DUE_SOON = "warning"
OVERDUE = "overdue"

LABELS = {
    NO_SLA: "No SLA",
    ON_TIME: "On Time",
    DUE_SOON: "Due Soon",
    OVERDUE: "Overdue",
}

CLOSED_STATUSES = {"resolved", "closed"}


@dataclass(frozen=True)
class SlaDisplay:
    status: str
    label: str
    hours_remaining: float | None = None
    countdown: str | None = None


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _countdown(hours: float) -> str:
    total_minutes = int(hours * 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hrs, minutes = divmod(remainder, 60)
    if days:
        return f"{days}d {hrs}h left"
    return f"{hrs}h {minutes}m left"


def sla_display(ticket: Mapping[str, Any], now: datetime | None = None, warning_hours: float = 2.0) -> SlaDisplay:
    """Time-remaining label for a ticket. Tickets without a due date have no SLA."""
    due_raw = ticket.get("due_date")
    if due_raw is None:
        return SlaDisplay(status=NO_SLA, label=LABELS[NO_SLA])
    if ticket.get("status") in CLOSED_STATUSES:
        return SlaDisplay(status=ON_TIME, label=LABELS[ON_TIME])

    now = now or datetime.now(timezone.utc)
    hours = (_as_datetime(due_raw) - now).total_seconds() / 3600
    if hours < 0:
        return SlaDisplay(status=OVERDUE, label=LABELS[OVERDUE], hours_remaining=round(hours, 2))
    status = DUE_SOON if hours < warning_hours else ON_TIME
    return SlaDisplay(status=status, label=LABELS[status], hours_remaining=round(hours, 2), countdown=_countdown(hours))
