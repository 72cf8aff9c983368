from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from agencydesk.errors import DataError, DependentRecordsError
from agencydesk.screens.base import Confirm, ScreenController, validate_email, validate_required
from agencydesk.store.client import FilterSpec


DEPENDENT_TABLES = ("projects", "tickets", "invoices")


class CustomersController(ScreenController):
    """Customer list. Rows render first with zero stats; per-customer stats follow in a second wave."""

    screen_name = "customers"
    entity_name = "customer"
    search_fields = ("first_name", "last_name", "email", "company_name")
    stat_defaults = {"project_count": 0, "ticket_count": 0, "total_spent": Decimal("0")}

    async def fetch(self) -> list[dict[str, Any]]:
        result = await self.client.query(
            "profiles",
            FilterSpec(
                eq={"role": "customer"},
                order_by="created_at",
                descending=True,
                limit=self.settings.large_list_limit,
            ),
        )
        return result.raise_for_error().rows

    async def fetch_stats(self, rows: list[dict[str, Any]]) -> dict[Any, dict[str, Any]] | None:
        if not rows:
            return None
        ids = [row["id"] for row in rows]
        projects, tickets, invoices = await asyncio.gather(
            self.client.query("projects", FilterSpec(in_={"customer_id": ids})),
            self.client.query("tickets", FilterSpec(in_={"customer_id": ids})),
            self.client.query("invoices", FilterSpec(in_={"customer_id": ids}, eq={"status": "paid"})),
        )
        project_counts = Counter(row["customer_id"] for row in self.rows_or_empty(projects, "projects"))
        ticket_counts = Counter(row["customer_id"] for row in self.rows_or_empty(tickets, "tickets"))
        spent: dict[Any, Decimal] = defaultdict(Decimal)
        for invoice in self.rows_or_empty(invoices, "invoices"):
            spent[invoice["customer_id"]] += Decimal(str(invoice["amount"] or 0))

        return {
            customer_id: {
                "project_count": project_counts.get(customer_id, 0),
                "ticket_count": ticket_counts.get(customer_id, 0),
                "total_spent": spent.get(customer_id, Decimal("0")),
            }
            for customer_id in ids
        }

    async def create(self, payload: Mapping[str, Any]) -> None:
        self.require_valid({**validate_required(payload, ("first_name", "email")), **validate_email(payload)})
        values = {**payload, "role": "customer"}
        await self.run_mutation(
            "create",
            lambda: self.client.mutate("profiles", "insert", values),
            success="Customer created successfully",
        )

    async def update(self, customer_id: Any, payload: Mapping[str, Any]) -> None:
        self.require_valid(validate_email(payload))
        values = {key: value for key, value in payload.items() if key not in {"id", "role", "is_super_admin"}}
        await self.run_mutation(
            "update",
            lambda: self.client.mutate("profiles", "update", values, match={"id": customer_id}),
            success="Customer updated successfully",
        )

    async def count_dependencies(self, customer_id: Any) -> dict[str, int]:
        results = await asyncio.gather(
            *(self.client.query(table, FilterSpec(eq={"customer_id": customer_id}, head=True)) for table in DEPENDENT_TABLES)
        )
        return {table: result.raise_for_error().count or 0 for table, result in zip(DEPENDENT_TABLES, results)}

    async def delete(self, customer_id: Any, confirm: Confirm | None = None) -> None:
        try:
            dependencies = await self.count_dependencies(customer_id)
        except DataError as exc:
            self._mutation_failed("delete", exc, self.state)
            raise
        if any(dependencies.values()):
            error = DependentRecordsError(
                "customer",
                "This customer has related records and cannot be deleted",
                dependencies,
            )
            self._mutation_failed("delete", error, self.state)
            raise error
        await self.run_mutation(
            "delete",
            lambda: self.client.mutate("profiles", "delete", match={"id": customer_id}),
            success="Customer deleted successfully",
            confirm=confirm,
        )
