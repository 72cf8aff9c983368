from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from agencydesk.errors import NotFound
from agencydesk.notifications.email import EmailDispatcher, EmailTemplate
from agencydesk.screens.base import BulkResult, ScreenController, validate_required
from agencydesk.screens.sla import sla_display
from agencydesk.store.client import FilterSpec


logger = logging.getLogger("agencydesk.screens.tickets")

TICKET_STATUSES = ("open", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")


def ticket_number(ticket: Mapping[str, Any]) -> str:
    return str(ticket["id"]).split("-")[0].upper()


def customer_name(profile: Mapping[str, Any] | None) -> str:
    if not profile:
        return "Unknown"
    name = " ".join(part for part in (profile.get("first_name"), profile.get("last_name")) if part)
    return name or profile.get("email") or "Unknown"


class TicketsController(ScreenController):
    screen_name = "tickets"
    entity_name = "ticket"
    search_fields = ("title", "description", "customer_name")

    def __init__(self, *args: Any, email: EmailDispatcher | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.email = email or EmailDispatcher(self.client, self.settings)
        self.categories: list[dict[str, Any]] = []

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]:
        tickets, categories = await asyncio.gather(
            self.client.query(
                "tickets",
                FilterSpec(order_by="created_at", descending=True, limit=self.settings.large_list_limit),
            ),
            self.client.query("ticket_categories", FilterSpec(order_by="name")),
        )
        ticket_rows = tickets.raise_for_error().rows
        customer_ids = sorted({row["customer_id"] for row in ticket_rows}, key=str)
        profiles: list[dict[str, Any]] = []
        if customer_ids:
            profiles = self.rows_or_empty(
                await self.client.query("profiles", FilterSpec(in_={"id": customer_ids})),
                "profiles",
            )
        return ticket_rows, self.rows_or_empty(categories, "ticket_categories"), profiles

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        tickets, categories, profiles = payload
        self.categories = categories
        category_names = {category["id"]: category["name"] for category in categories}
        profiles_by_id = {profile["id"]: profile for profile in profiles}
        now = self.clock()
        rows = []
        for ticket in tickets:
            profile = profiles_by_id.get(ticket["customer_id"])
            sla = sla_display(ticket, now, self.settings.sla_warning_hours)
            rows.append(
                {
                    **ticket,
                    "customer_name": customer_name(profile),
                    "customer_email": profile.get("email") if profile else None,
                    "category_name": category_names.get(ticket.get("category_id")),
                    "sla_status": sla.status,
                    "sla_label": sla.label,
                    "sla_countdown": sla.countdown,
                }
            )
        self.set_rows(rows)

    def _ticket(self, ticket_id: Any) -> dict[str, Any]:
        for ticket in self.rows:
            if str(ticket["id"]) == str(ticket_id):
                return ticket
        raise NotFound("Ticket", ticket_id)

    def _status_changes(self, status: str, now: datetime) -> dict[str, Any]:
        changes: dict[str, Any] = {"status": status}
        if status == "resolved":
            changes["resolved_at"] = now
        return changes

    def _check_status(self, status: str) -> None:
        if status not in TICKET_STATUSES:
            self.require_valid({"status": f"Status must be one of: {', '.join(TICKET_STATUSES)}"})

    async def create_ticket(self, payload: Mapping[str, Any], *, notify: bool = False) -> None:
        errors = validate_required(payload, ("title", "customer_id"))
        priority = payload.get("priority") or "medium"
        if priority not in TICKET_PRIORITIES:
            errors["priority"] = f"Priority must be one of: {', '.join(TICKET_PRIORITIES)}"
        self.require_valid(errors)

        values = {**payload, "priority": priority, "status": "open"}
        result = await self.run_mutation(
            "create",
            lambda: self.client.mutate("tickets", "insert", values),
            success="Ticket created successfully",
        )
        if notify and result is not None and result.rows:
            await self._notify(self._ticket(result.rows[0]["id"]), EmailTemplate.SUPPORT_TICKET_OPENED)

    async def update_status(self, ticket_id: Any, status: str, *, notify: bool = False) -> None:
        self._check_status(status)
        ticket = self._ticket(ticket_id)
        changes = self._status_changes(status, self.clock())
        await self.run_mutation(
            "update_status",
            lambda: self.client.mutate("tickets", "update", changes, match={"id": ticket["id"]}),
            success=f"Ticket marked as {status.replace('_', ' ')}",
        )
        if notify:
            template = EmailTemplate.SUPPORT_TICKET_CLOSED if status == "closed" else EmailTemplate.SUPPORT_TICKET_UPDATE
            await self._notify({**ticket, "status": status}, template)

    async def bulk_update_status(self, ticket_ids: Sequence[Any], status: str) -> list[BulkResult]:
        self._check_status(status)
        changes = self._status_changes(status, self.clock())
        return await self.run_bulk(
            "bulk_status",
            ticket_ids,
            lambda ticket_id: self.client.mutate("tickets", "update", changes, match={"id": ticket_id}),
            success=f"Updated {len(ticket_ids)} tickets",
        )

    async def update_priority(self, ticket_id: Any, priority: str) -> None:
        if priority not in TICKET_PRIORITIES:
            self.require_valid({"priority": f"Priority must be one of: {', '.join(TICKET_PRIORITIES)}"})
        await self.run_mutation(
            "update_priority",
            lambda: self.client.mutate("tickets", "update", {"priority": priority}, match={"id": ticket_id}),
            success="Ticket priority updated",
        )

    async def set_due_date(self, ticket_id: Any, due_date: datetime | None) -> None:
        await self.run_mutation(
            "set_due_date",
            lambda: self.client.mutate("tickets", "update", {"due_date": due_date}, match={"id": ticket_id}),
            success="Due date updated" if due_date else "Due date cleared",
        )

    async def messages(self, ticket_id: Any) -> list[dict[str, Any]]:
        result = await self.client.query("messages", FilterSpec(eq={"ticket_id": ticket_id}, order_by="created_at"))
        return result.raise_for_error().rows

    async def reply(self, ticket_id: Any, content: str, *, is_internal: bool = False) -> None:
        self.require_valid(validate_required({"content": content}, ("content",)))
        ticket = self._ticket(ticket_id)
        now = self.clock()

        async def write():  # type: ignore[no-untyped-def]
            result = await self.client.mutate(
                "messages",
                "insert",
                {
                    "ticket_id": ticket["id"],
                    "sender_id": self.session.user_id,
                    "content": content,
                    "is_internal": is_internal,
                },
            )
            if result.ok and not is_internal and ticket.get("first_response_at") is None:
                stamped = await self.client.mutate(
                    "tickets", "update", {"first_response_at": now}, match={"id": ticket["id"]}
                )
                if stamped.error is not None:
                    logger.warning(
                        "tickets.first_response_stamp_failed",
                        extra={"row_id": str(ticket["id"]), "error_code": stamped.error.code, "error": stamped.error.message},
                    )
            return result

        await self.run_mutation(
            "reply",
            write,
            success="Internal note added" if is_internal else "Reply sent",
        )

    async def _notify(self, ticket: Mapping[str, Any], template: EmailTemplate) -> None:
        recipient = ticket.get("customer_email")
        if not recipient:
            logger.info("tickets.notify_skipped", extra={"row_id": str(ticket["id"]), "template": template.value})
            return
        result = await self.email.send(
            recipient,
            template,
            {
                "customer_name": ticket.get("customer_name"),
                "ticket_number": ticket_number(ticket),
                "ticket_title": ticket.get("title"),
                "status": ticket.get("status"),
                "priority": ticket.get("priority"),
            },
        )
        if not result.ok:
            self.toasts.error(description="The ticket was saved but the notification email could not be sent")
