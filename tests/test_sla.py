from __future__ import annotations

from datetime import datetime, timedelta, timezone

from agencydesk.screens.sla import DUE_SOON, NO_SLA, ON_TIME, OVERDUE, sla_display


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_ticket_without_due_date_has_no_sla() -> None:
    display = sla_display({"priority": "urgent", "status": "open", "due_date": None}, NOW)
    assert display.status == NO_SLA
    assert display.label == "No SLA"
    assert display.countdown is None


def test_past_due_date_is_overdue() -> None:
    display = sla_display({"priority": "urgent", "status": "open", "due_date": NOW - timedelta(minutes=5)}, NOW)
    assert display.status == OVERDUE
    assert display.label == "Overdue"
    assert display.hours_remaining is not None and display.hours_remaining < 0


def test_due_within_warning_window() -> None:
    display = sla_display({"status": "in_progress", "due_date": NOW + timedelta(minutes=90)}, NOW)
    assert display.status == DUE_SOON
    assert display.countdown == "1h 30m left"


def test_due_later_is_on_time_with_day_countdown() -> None:
    display = sla_display({"status": "open", "due_date": NOW + timedelta(days=2, hours=3)}, NOW)
    assert display.status == ON_TIME
    assert display.countdown == "2d 3h left"


def test_iso_string_and_naive_datetimes_are_accepted() -> None:
    display = sla_display({"status": "open", "due_date": "2026-03-10T11:00:00Z"}, NOW)
    assert display.status == OVERDUE

    display = sla_display({"status": "open", "due_date": datetime(2026, 3, 12, 12, 0)}, NOW)
    assert display.status == ON_TIME


def test_closed_ticket_is_never_overdue() -> None:
    display = sla_display({"status": "resolved", "due_date": NOW - timedelta(days=3)}, NOW)
    assert display.status == ON_TIME


def test_warning_window_is_configurable() -> None:
    ticket = {"status": "open", "due_date": NOW + timedelta(hours=3)}
    assert sla_display(ticket, NOW).status == ON_TIME
    assert sla_display(ticket, NOW, warning_hours=4).status == DUE_SOON
