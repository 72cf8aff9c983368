from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from agencydesk.core.config import Settings, get_settings
from agencydesk.errors import ValidationFailed
from agencydesk.metrics import observe_email_dispatch
from agencydesk.screens.base import validate_email
from agencydesk.store.client import DataClient, Result


logger = logging.getLogger("agencydesk.notifications.email")

EMAIL_FUNCTION = "send-domain-hosting-email"


class EmailTemplate(str, Enum):
    DOMAIN_REGISTRATION_CONFIRMATION = "domain-registration-confirmation"
    DOMAIN_TRANSFER_INITIATED = "domain-transfer-initiated"
    DOMAIN_TRANSFER_COMPLETED = "domain-transfer-completed"
    DOMAIN_RENEWAL_REMINDER_30 = "domain-renewal-reminder-30"
    DOMAIN_RENEWAL_REMINDER_7 = "domain-renewal-reminder-7"
    DOMAIN_EXPIRED = "domain-expired"
    DOMAIN_REDEMPTION = "domain-redemption"
    HOSTING_ACCOUNT_SETUP = "hosting-account-setup"
    HOSTING_RENEWAL_REMINDER_30 = "hosting-renewal-reminder-30"
    HOSTING_RENEWAL_REMINDER_7 = "hosting-renewal-reminder-7"
    HOSTING_EXPIRED = "hosting-expired"
    RESOURCE_USAGE_ALERT = "resource-usage-alert"
    NAMESERVER_UPDATE = "nameserver-update"
    EMAIL_HOSTING_SETUP = "email-hosting-setup"
    INVOICE_PAYMENT_RECEIPT = "invoice-payment-receipt"
    FAILED_PAYMENT_RETRY = "failed-payment-retry"
    AUTO_RENEWAL_CONFIRMATION = "auto-renewal-confirmation"
    ACCOUNT_VERIFICATION = "account-verification"
    PASSWORD_RESET = "password-reset"
    HOSTING_SUSPENSION = "hosting-suspension"
    HOSTING_TERMINATION = "hosting-termination"
    SUPPORT_TICKET_OPENED = "support-ticket-opened"
    SUPPORT_TICKET_UPDATE = "support-ticket-update"
    SUPPORT_TICKET_CLOSED = "support-ticket-closed"


TEMPLATE_GROUPS: dict[str, tuple[EmailTemplate, ...]] = {
    "domain": (
        EmailTemplate.DOMAIN_REGISTRATION_CONFIRMATION,
        EmailTemplate.DOMAIN_TRANSFER_INITIATED,
        EmailTemplate.DOMAIN_TRANSFER_COMPLETED,
        EmailTemplate.DOMAIN_RENEWAL_REMINDER_30,
        EmailTemplate.DOMAIN_RENEWAL_REMINDER_7,
        EmailTemplate.DOMAIN_EXPIRED,
        EmailTemplate.DOMAIN_REDEMPTION,
    ),
    "hosting": (
        EmailTemplate.HOSTING_ACCOUNT_SETUP,
        EmailTemplate.HOSTING_RENEWAL_REMINDER_30,
        EmailTemplate.HOSTING_RENEWAL_REMINDER_7,
        EmailTemplate.HOSTING_EXPIRED,
        EmailTemplate.RESOURCE_USAGE_ALERT,
    ),
    "technical": (
        EmailTemplate.NAMESERVER_UPDATE,
        EmailTemplate.EMAIL_HOSTING_SETUP,
    ),
    "billing": (
        EmailTemplate.INVOICE_PAYMENT_RECEIPT,
        EmailTemplate.FAILED_PAYMENT_RETRY,
        EmailTemplate.AUTO_RENEWAL_CONFIRMATION,
    ),
    "security_support": (
        EmailTemplate.ACCOUNT_VERIFICATION,
        EmailTemplate.PASSWORD_RESET,
        EmailTemplate.HOSTING_SUSPENSION,
        EmailTemplate.HOSTING_TERMINATION,
        EmailTemplate.SUPPORT_TICKET_OPENED,
        EmailTemplate.SUPPORT_TICKET_UPDATE,
        EmailTemplate.SUPPORT_TICKET_CLOSED,
    ),
}

# Keys the subject line of each template interpolates.
_DOMAIN_KEYS = ("domain_name",)
REQUIRED_DATA: dict[EmailTemplate, tuple[str, ...]] = {
    **{template: _DOMAIN_KEYS for template in TEMPLATE_GROUPS["domain"]},
    EmailTemplate.HOSTING_RENEWAL_REMINDER_30: _DOMAIN_KEYS,
    EmailTemplate.HOSTING_RENEWAL_REMINDER_7: _DOMAIN_KEYS,
    EmailTemplate.HOSTING_EXPIRED: _DOMAIN_KEYS,
    EmailTemplate.RESOURCE_USAGE_ALERT: ("domain_name", "usage_percentage"),
    EmailTemplate.NAMESERVER_UPDATE: _DOMAIN_KEYS,
    EmailTemplate.EMAIL_HOSTING_SETUP: _DOMAIN_KEYS,
    EmailTemplate.INVOICE_PAYMENT_RECEIPT: ("invoice_number",),
    EmailTemplate.FAILED_PAYMENT_RETRY: ("invoice_number",),
    EmailTemplate.AUTO_RENEWAL_CONFIRMATION: ("service_description",),
    EmailTemplate.HOSTING_SUSPENSION: _DOMAIN_KEYS,
    EmailTemplate.HOSTING_TERMINATION: _DOMAIN_KEYS,
    EmailTemplate.SUPPORT_TICKET_OPENED: ("ticket_number",),
    EmailTemplate.SUPPORT_TICKET_UPDATE: ("ticket_number",),
    EmailTemplate.SUPPORT_TICKET_CLOSED: ("ticket_number",),
}


def _flat_value(key: str, value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    raise ValidationFailed({key: "Email data values must be flat scalars"})


def build_email_data(settings: Settings, data: Mapping[str, Any] | None) -> dict[str, Any]:
    merged: dict[str, Any] = {
        "company_name": settings.email_company_name,
        "support_email": settings.email_support_email,
        "support_phone": settings.email_support_phone,
        "login_url": settings.email_login_url,
    }
    for key, value in (data or {}).items():
        merged[key] = _flat_value(key, value)
    return merged


class EmailDispatcher:
    """Assembles ``{to, template, data}`` and hands it to the email function. Rendering happens remotely."""

    def __init__(self, client: DataClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or get_settings()

    def resolve_template(self, template: EmailTemplate | str) -> EmailTemplate:
        try:
            return EmailTemplate(template)
        except ValueError as exc:
            raise ValidationFailed({"template": f"Unknown email template: {template}"}) from exc

    async def send(
        self,
        to: str,
        template: EmailTemplate | str,
        data: Mapping[str, Any] | None = None,
        *,
        subject: str | None = None,
    ) -> Result:
        if not to:
            raise ValidationFailed({"to": "Recipient is required"})
        errors = validate_email({"to": to}, "to")
        if errors:
            raise ValidationFailed(errors)
        resolved = self.resolve_template(template)
        payload_data = build_email_data(self.settings, data)
        missing = [key for key in REQUIRED_DATA.get(resolved, ()) if payload_data.get(key) in (None, "")]
        if missing:
            raise ValidationFailed({key: "Required by the email template" for key in missing})

        payload: dict[str, Any] = {"to": to, "template": resolved.value, "data": payload_data}
        if subject:
            payload["subject"] = subject
        result = await self.client.invoke(EMAIL_FUNCTION, payload)
        outcome = "ok" if result.ok else "error"
        observe_email_dispatch(resolved.value, outcome)
        if result.ok:
            logger.info("email.dispatched", extra={"template": resolved.value})
        else:
            logger.warning(
                "email.dispatch_failed",
                extra={"template": resolved.value, "error_code": result.error.code, "error": result.error.message},  # type: ignore[union-attr]
            )
        return result
