from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from agencydesk.errors import NotFound
from agencydesk.notifications.email import EmailDispatcher, EmailTemplate
from agencydesk.screens.base import Confirm, ScreenController, validate_required
from agencydesk.screens.tickets import customer_name
from agencydesk.store.client import FilterSpec


logger = logging.getLogger("agencydesk.screens.invoices")

INVOICE_STATUSES = ("pending", "paid", "failed", "refunded")


class InvoicesController(ScreenController):
    screen_name = "invoices"
    entity_name = "invoice"
    search_fields = ("invoice_number", "customer_name", "customer_email")

    def __init__(self, *args: Any, email: EmailDispatcher | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.email = email or EmailDispatcher(self.client, self.settings)

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        invoices = await self.client.query(
            "invoices",
            FilterSpec(order_by="created_at", descending=True, limit=self.settings.large_list_limit),
        )
        rows = invoices.raise_for_error().rows
        customer_ids = sorted({row["customer_id"] for row in rows}, key=str)
        if not customer_ids:
            return rows, []
        profiles = await self.client.query("profiles", FilterSpec(in_={"id": customer_ids}))
        return rows, self.rows_or_empty(profiles, "profiles")

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        invoices, profiles = payload
        by_id = {profile["id"]: profile for profile in profiles}
        self.set_rows(
            [
                {
                    **invoice,
                    "customer_name": customer_name(by_id.get(invoice["customer_id"])),
                    "customer_email": (by_id.get(invoice["customer_id"]) or {}).get("email"),
                }
                for invoice in invoices
            ]
        )

    def totals(self) -> dict[str, Decimal]:
        totals = {status: Decimal("0") for status in INVOICE_STATUSES}
        for invoice in self.rows:
            if invoice.get("status") in totals:
                totals[invoice["status"]] += Decimal(str(invoice.get("amount") or 0))
        return totals

    def _invoice(self, invoice_id: Any) -> dict[str, Any]:
        for invoice in self.rows:
            if str(invoice["id"]) == str(invoice_id):
                return invoice
        raise NotFound("Invoice", invoice_id)

    async def create(self, payload: Mapping[str, Any]) -> None:
        self.require_valid(validate_required(payload, ("customer_id", "invoice_number", "amount")))
        values = {**payload, "status": payload.get("status") or "pending"}
        await self.run_mutation(
            "create",
            lambda: self.client.mutate("invoices", "insert", values),
            success="Invoice created successfully",
        )

    async def mark_paid(self, invoice_id: Any, *, notify: bool = True) -> None:
        invoice = self._invoice(invoice_id)
        paid_at = self.clock()
        await self.run_mutation(
            "mark_paid",
            lambda: self.client.mutate(
                "invoices", "update", {"status": "paid", "paid_at": paid_at}, match={"id": invoice["id"]}
            ),
            success=f"Invoice {invoice['invoice_number']} marked as paid",
        )
        if notify and invoice.get("customer_email"):
            result = await self.email.send(
                invoice["customer_email"],
                EmailTemplate.INVOICE_PAYMENT_RECEIPT,
                {
                    "customer_name": invoice.get("customer_name"),
                    "invoice_number": invoice["invoice_number"],
                    "amount": invoice.get("amount"),
                    "paid_at": paid_at,
                },
            )
            if not result.ok:
                self.toasts.error(description="The invoice was updated but the receipt email could not be sent")

    async def delete(self, invoice_id: Any, confirm: Confirm | None = None) -> None:
        await self.run_mutation(
            "delete",
            lambda: self.client.mutate("invoices", "delete", match={"id": invoice_id}),
            success="Invoice deleted successfully",
            confirm=confirm,
        )
