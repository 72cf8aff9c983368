from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from agencydesk.errors import FOREIGN_KEY_VIOLATION, DataError, DependentRecordsError
from agencydesk.screens.base import BulkResult, Confirm, ScreenController, validate_required
from agencydesk.store.client import FilterSpec, StoreError


CENT = Decimal("0.01")


def adjust_price(price: Any, percent: Any) -> Decimal | None:
    """Return ``round(price * (1 + percent / 100), 2)``; ``None`` stays ``None``."""
    if price is None:
        return None
    multiplier = Decimal(1) + Decimal(str(percent)) / Decimal(100)
    return (Decimal(str(price)) * multiplier).quantize(CENT, rounding=ROUND_HALF_UP)


def adjusted_fields(row: Mapping[str, Any], fields: Sequence[str], percent: Any) -> dict[str, Decimal]:
    return {name: adjust_price(row[name], percent) for name in fields if row.get(name) is not None}  # type: ignore[misc]


class PricingController(ScreenController):
    table = ""
    order_field = ""
    price_fields: Sequence[str] = ()
    required_fields: Sequence[str] = ()

    async def fetch(self) -> list[dict[str, Any]]:
        result = await self.client.query(self.table, FilterSpec(order_by=self.order_field))
        return result.raise_for_error().rows

    async def save(self, payload: Mapping[str, Any], row_id: Any = None) -> None:
        self.require_valid(validate_required(payload, self.required_fields))
        values = dict(payload)
        for name in self.price_fields:
            if values.get(name) is not None:
                values[name] = Decimal(str(values[name])).quantize(CENT, rounding=ROUND_HALF_UP)
        if row_id is None:
            await self.run_mutation(
                "create",
                lambda: self.client.mutate(self.table, "insert", values),
                success=f"{self.entity_name.capitalize()} created",
            )
        else:
            await self.run_mutation(
                "update",
                lambda: self.client.mutate(self.table, "update", values, match={"id": row_id}),
                success=f"{self.entity_name.capitalize()} updated",
            )

    async def delete(self, row_id: Any, confirm: Confirm | None = None) -> None:
        await self.run_mutation(
            "delete",
            lambda: self.client.mutate(self.table, "delete", match={"id": row_id}),
            success=f"{self.entity_name.capitalize()} deleted",
            confirm=confirm,
        )

    async def bulk_adjust(self, row_ids: Sequence[Any], percent: Any) -> list[BulkResult]:
        """Apply a percentage to every price field of each selected row, one write per row."""
        by_id = {str(row["id"]): row for row in self.rows}

        async def write_one(row_id: Any):  # type: ignore[no-untyped-def]
            row = by_id.get(str(row_id))
            if row is None:
                raise DataError("not_found", f"{self.entity_name} not found")
            return await self.client.mutate(
                self.table,
                "update",
                adjusted_fields(row, self.price_fields, percent),
                match={"id": row["id"]},
            )

        return await self.run_bulk(
            "bulk_adjust",
            row_ids,
            write_one,
            success=f"Adjusted {len(row_ids)} {self.entity_name}s by {percent}%",
        )


class DomainPricingController(PricingController):
    screen_name = "domain_pricing"
    entity_name = "domain price"
    table = "domain_tld_pricing"
    order_field = "tld"
    search_fields = ("tld", "category")
    price_fields = ("reg_1y_gbp", "reg_2y_gbp", "reg_5y_gbp", "reg_10y_gbp", "renew_1y_gbp", "transfer_1y_gbp")
    required_fields = ("tld",)


class ServicePricingController(PricingController):
    screen_name = "service_pricing"
    entity_name = "service price"
    table = "service_pricing_defaults"
    order_field = "service_name"
    search_fields = ("service_name", "category")
    price_fields = ("default_price", "price_range_min", "price_range_max", "hourly_rate")
    required_fields = ("service_name",)


def _package_in_use(error: StoreError) -> DataError:
    if error.code == FOREIGN_KEY_VIOLATION:
        return DependentRecordsError(
            "hosting package",
            "This package is in use by one or more hosting accounts. Deactivate it instead of deleting.",
        )
    return DataError(error.code, error.message, error.details)


class HostingPackagesController(PricingController):
    screen_name = "hosting_packages"
    entity_name = "hosting package"
    table = "hosting_packages"
    order_field = "name"
    search_fields = ("name",)
    price_fields = ("price_monthly", "price_yearly")
    required_fields = ("name",)

    async def delete(self, row_id: Any, confirm: Confirm | None = None) -> None:
        await self.run_mutation(
            "delete",
            lambda: self.client.mutate(self.table, "delete", match={"id": row_id}),
            success="Hosting package deleted",
            confirm=confirm,
            translate=_package_in_use,
        )
