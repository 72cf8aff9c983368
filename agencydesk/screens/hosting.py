"""Domain registrations and hosting accounts owned by customers."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from agencydesk.errors import NotFound
from agencydesk.screens.base import ScreenController
from agencydesk.screens.tickets import customer_name
from agencydesk.store.client import FilterSpec


DOMAIN_STATUSES = ("pending", "active", "failed", "expired")
DOMAIN_TERM = timedelta(days=365)

HOSTING_PROVISION_FUNCTION = "hosting-provision"
# Status an account must be in for each provisioning action.
PROVISION_ACTIONS = {"create": "pending", "suspend": "active", "unsuspend": "suspended"}


def _find(rows: list[dict[str, Any]], row_id: Any, entity: str) -> dict[str, Any]:
    for row in rows:
        if str(row["id"]) == str(row_id):
            return row
    raise NotFound(entity, row_id)


class DomainsController(ScreenController):
    screen_name = "domains"
    entity_name = "domain"
    search_fields = ("domain_name", "customer_name", "customer_email")

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        domains = await self.client.query(
            "domains",
            FilterSpec(order_by="created_at", descending=True, limit=self.settings.default_list_limit),
        )
        rows = domains.raise_for_error().rows
        customer_ids = sorted({row["customer_id"] for row in rows}, key=str)
        if not customer_ids:
            return rows, []
        profiles = await self.client.query("profiles", FilterSpec(in_={"id": customer_ids}))
        return rows, self.rows_or_empty(profiles, "profiles")

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        domains, profiles = payload
        by_id = {profile["id"]: profile for profile in profiles}
        self.set_rows(
            [
                {
                    **domain,
                    "customer_name": customer_name(by_id.get(domain["customer_id"])),
                    "customer_email": (by_id.get(domain["customer_id"]) or {}).get("email"),
                }
                for domain in domains
            ]
        )

    async def update_status(self, domain_id: Any, status: str, notes: str | None = None) -> None:
        """Set a domain's status. Activating starts a one-year registration term from today."""
        if status not in DOMAIN_STATUSES:
            self.require_valid({"status": f"Status must be one of: {', '.join(DOMAIN_STATUSES)}"})
        domain = _find(self.rows, domain_id, "Domain")
        changes: dict[str, Any] = {"status": status}
        if status == "active":
            today = self.clock().date()
            changes["registration_date"] = today
            changes["expiry_date"] = today + DOMAIN_TERM
        if notes:
            changes["notes"] = notes
        await self.run_mutation(
            "update_status",
            lambda: self.client.mutate("domains", "update", changes, match={"id": domain["id"]}),
            success="Domain status has been updated successfully",
        )


class HostingAccountsController(ScreenController):
    screen_name = "hosting_accounts"
    entity_name = "hosting account"
    search_fields = ("domain", "customer_name", "package_name")

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]:
        accounts = await self.client.query(
            "hosting_accounts",
            FilterSpec(order_by="created_at", descending=True, limit=self.settings.large_list_limit),
        )
        rows = accounts.raise_for_error().rows
        if not rows:
            return rows, [], []
        package_ids = sorted({row["package_id"] for row in rows}, key=str)
        customer_ids = sorted({row["customer_id"] for row in rows}, key=str)
        packages = await self.client.query("hosting_packages", FilterSpec(in_={"id": package_ids}))
        profiles = await self.client.query("profiles", FilterSpec(in_={"id": customer_ids}))
        return rows, self.rows_or_empty(packages, "hosting_packages"), self.rows_or_empty(profiles, "profiles")

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        accounts, packages, profiles = payload
        package_names = {package["id"]: package["name"] for package in packages}
        by_id = {profile["id"]: profile for profile in profiles}
        self.set_rows(
            [
                {
                    **account,
                    "package_name": package_names.get(account["package_id"]),
                    "customer_name": customer_name(by_id.get(account["customer_id"])),
                    "customer_email": (by_id.get(account["customer_id"]) or {}).get("email"),
                }
                for account in accounts
            ]
        )

    async def provision(self, account_id: Any, action: str) -> None:
        required = PROVISION_ACTIONS.get(action)
        if required is None:
            self.require_valid({"action": f"Action must be one of: {', '.join(PROVISION_ACTIONS)}"})
        account = _find(self.rows, account_id, "Hosting account")
        if account["status"] != required:
            self.require_valid({"action": f"Cannot {action} an account that is {account['status']}"})
        await self.run_mutation(
            "provision",
            lambda: self.client.invoke(
                HOSTING_PROVISION_FUNCTION, {"subscriptionId": str(account["id"]), "action": action}
            ),
            success="Hosting account has been updated successfully",
        )

    async def update_notes(self, account_id: Any, notes: str) -> None:
        account = _find(self.rows, account_id, "Hosting account")
        await self.run_mutation(
            "update_notes",
            lambda: self.client.mutate("hosting_accounts", "update", {"notes": notes}, match={"id": account["id"]}),
            success="Subscription notes have been updated successfully",
        )
