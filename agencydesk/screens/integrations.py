from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from agencydesk.errors import NotFound, PermissionDenied
from agencydesk.screens.base import Confirm, ScreenController
from agencydesk.store.client import FilterSpec, Result


SUPPORTED_TYPES = ("unlimited_web_hosting", "openprovider", "whm_cpanel", "google_ai")


@dataclass(frozen=True)
class CredentialField:
    key: str
    message: str
    default: str | None = None
    required: bool = True


Prompt = Callable[[CredentialField], str | None]


# "access_token" is stored in its own column; every other key lands in config_data.
CREDENTIAL_FIELDS: dict[str, tuple[CredentialField, ...]] = {
    "unlimited_web_hosting": (
        CredentialField("access_token", "Enter your Unlimited Web Hosting UK API Key:"),
        CredentialField("api_url", "Enter your Unlimited Web Hosting UK API URL:", "https://api.unlimitedwebhosting.co.uk"),
    ),
    "openprovider": (
        CredentialField("access_token", "Enter your OpenProvider API Key:"),
        CredentialField("api_url", "Enter your OpenProvider API URL:", "https://api.openprovider.eu"),
    ),
    "whm_cpanel": (
        CredentialField("whm_url", "Enter your WHM Server URL:", "https://your-whm-server.com:2087"),
        CredentialField("whm_username", "Enter your WHM Username:", "root"),
        CredentialField("access_token", "Enter your WHM API Token:"),
        CredentialField(
            "package_template",
            "Enter WHM Package Names (comma-separated):",
            "starter,business,professional",
            required=False,
        ),
        CredentialField("server_ip", "Enter Default Server IP:", required=False),
    ),
}

CONFIG_EXTRAS: dict[str, dict[str, Any]] = {
    "whm_cpanel": {"auto_provision": True},
}


class IntegrationsController(ScreenController):
    """Settings tab for third-party API credentials. Changes are restricted to super admins."""

    screen_name = "api_integrations"
    entity_name = "integration"
    search_fields = ("integration_name", "integration_type")

    async def fetch(self) -> list[dict[str, Any]]:
        result = await self.client.query(
            "api_integrations",
            FilterSpec(in_={"integration_type": SUPPORTED_TYPES}, order_by="integration_name"),
        )
        return result.raise_for_error().rows

    def _require_super_admin(self, action: str) -> None:
        if not self.session.is_super_admin:
            self.toasts.error("Access Denied", f"Only super admin can {action} API integrations")
            raise PermissionDenied(f"Only super admin can {action} API integrations")

    def _integration(self, integration_id: Any) -> dict[str, Any]:
        for row in self.rows:
            if str(row["id"]) == str(integration_id):
                return row
        raise NotFound("Integration", integration_id)

    def collect_credentials(self, integration_type: str, prompt: Prompt) -> dict[str, Any] | None:
        answers: dict[str, Any] = {}
        for field in CREDENTIAL_FIELDS[integration_type]:
            value = prompt(field)
            if field.required and not value:
                return None
            answers[field.key] = value or None
        return answers

    async def connect(self, integration_id: Any, prompt: Prompt, confirm: Confirm | None = None) -> Result | None:
        self._require_super_admin("configure")
        integration = self._integration(integration_id)
        integration_type = integration["integration_type"]

        if integration_type == "google_ai":
            changes: dict[str, Any] = {"is_connected": True, "last_sync_at": self.clock()}
        elif integration_type in CREDENTIAL_FIELDS:
            answers = self.collect_credentials(integration_type, prompt)
            if answers is None:
                return None
            token = answers.pop("access_token")
            changes = {
                "is_connected": True,
                "access_token": token,
                "config_data": {**answers, **CONFIG_EXTRAS.get(integration_type, {})},
                "last_sync_at": self.clock(),
            }
        else:
            self.toasts.success("Integration", f"{integration['integration_name']} integration settings...")
            return None

        return await self.run_mutation(
            "connect",
            lambda: self.client.mutate("api_integrations", "update", changes, match={"id": integration["id"]}),
            success=f"{integration['integration_name']} integration connected successfully",
            confirm=confirm if integration_type == "google_ai" else None,
        )

    async def disconnect(self, integration_id: Any, confirm: Confirm | None = None) -> Result | None:
        self._require_super_admin("modify")
        integration = self._integration(integration_id)
        changes = {"is_connected": False, "access_token": None, "refresh_token": None, "config_data": {}, "last_sync_at": None}
        return await self.run_mutation(
            "disconnect",
            lambda: self.client.mutate("api_integrations", "update", changes, match={"id": integration["id"]}),
            success=f"{integration['integration_name']} has been disconnected",
            confirm=confirm,
        )
