"""Server-side procedures callable through ``DataClient.rpc``.

Each procedure receives an open session and runs inside the caller's transaction;
``DataClient`` commits on success and rolls back on any exception, so a procedure
either applies all of its writes or none of them.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agencydesk.errors import DataError, NotFound
from agencydesk.store.models import Lead, LeadActivity, Profile, Project, utcnow


PROJECT_TYPES = {"game", "app", "web"}
INVALID_INPUT = "22P02"


def _as_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise DataError(INVALID_INPUT, f"invalid input syntax for type uuid: {value!r}") from exc


def _as_budget(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise DataError(INVALID_INPUT, f"invalid input syntax for type numeric: {value!r}") from exc


def convert_lead_to_project(
    session: Session,
    *,
    lead_id: Any,
    title: str,
    description: str | None = None,
    type: str = "web",
    budget: Decimal | float | None = None,
) -> str:
    lead = session.get(Lead, _as_uuid(lead_id))
    if lead is None:
        raise NotFound("Lead", lead_id)
    if lead.converted_to_customer:
        raise DataError("P0001", "Lead has already been converted")
    if not title or not title.strip():
        raise DataError("23502", "Project title is required")
    if type not in PROJECT_TYPES:
        raise DataError(INVALID_INPUT, f"Invalid project type: {type}")

    customer_id = lead.customer_id
    if customer_id is None:
        profile = session.scalar(select(Profile).where(Profile.email == lead.email))
        if profile is None:
            profile = Profile(
                email=lead.email,
                first_name=lead.first_name,
                last_name=lead.last_name,
                company_name=lead.company,
                phone=lead.phone,
                role="customer",
            )
            session.add(profile)
            session.flush()
        customer_id = profile.id

    project_budget = _as_budget(budget) if budget is not None else lead.deal_value
    project = Project(
        customer_id=customer_id,
        lead_id=lead.id,
        title=title.strip(),
        description=description,
        type=type,
        status="pending",
        budget=project_budget,
    )
    session.add(project)
    session.flush()

    lead.converted_to_customer = True
    lead.customer_id = customer_id
    lead.updated_at = utcnow()
    session.add(
        LeadActivity(
            lead_id=lead.id,
            activity_type="converted",
            description=f"Converted to project {project.title}",
            activity_metadata={"project_id": str(project.id), "customer_id": str(customer_id)},
        )
    )
    session.flush()
    return str(project.id)


PROCEDURES: dict[str, Callable[..., Any]] = {
    "convert_lead_to_project": convert_lead_to_project,
}
