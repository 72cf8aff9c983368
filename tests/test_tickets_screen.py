from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings
from agencydesk.core.database import Base, build_engine
from agencydesk.errors import ValidationFailed
from agencydesk.screens.tickets import TicketsController, ticket_number
from agencydesk.screens.toasts import GENERIC_ERROR
from agencydesk.store.client import DataClient
from agencydesk.store.models import Message, Profile, Ticket, TicketCategory


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def session_factory(tmp_path: Path) -> Generator[sessionmaker[Session], None, None]:
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'agencydesk.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def settings() -> Settings:
    return Settings(functions_url="http://functions.test/v1", functions_api_key="test-key")


@pytest.fixture()
def sent() -> list[dict]:
    return []


@pytest.fixture()
def client(session_factory: sessionmaker[Session], settings: Settings, sent: list[dict]) -> DataClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DataClient(session_factory, settings=settings, http_client=http_client)


@pytest.fixture()
def seeded(session_factory: sessionmaker[Session]) -> dict[str, uuid.UUID]:
    with session_factory() as session:
        admin = Profile(email="agent@agency.example.com", first_name="Agent", role="admin")
        customer = Profile(email="cust@example.com", first_name="Cara", last_name="Smith")
        category = TicketCategory(name="Billing")
        session.add_all([admin, customer, category])
        session.flush()
        urgent = Ticket(customer_id=customer.id, title="Site down", priority="urgent", category_id=category.id)
        late = Ticket(customer_id=customer.id, title="Renewal", priority="high", due_date=NOW - timedelta(hours=3))
        soon = Ticket(customer_id=customer.id, title="DNS change", due_date=NOW + timedelta(minutes=90))
        done = Ticket(customer_id=customer.id, title="Old", status="closed", due_date=NOW - timedelta(days=2))
        session.add_all([urgent, late, soon, done])
        session.commit()
        return {
            "admin": admin.id,
            "customer": customer.id,
            "urgent": urgent.id,
            "late": late.id,
            "soon": soon.id,
            "done": done.id,
        }


def _screen(client: DataClient, settings: Settings, seeded: dict[str, uuid.UUID]) -> TicketsController:
    session = SessionContext(user_id=str(seeded["admin"]), email="agent@agency.example.com", role="admin")
    return TicketsController(client, session, settings=settings, clock=lambda: NOW)


def _by_title(screen: TicketsController) -> dict[str, dict]:
    return {row["title"]: row for row in screen.rows}


def test_rows_carry_sla_labels(client: DataClient, settings: Settings, seeded: dict[str, uuid.UUID]) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())

    rows = _by_title(screen)
    assert rows["Site down"]["sla_label"] == "No SLA"
    assert rows["Site down"]["category_name"] == "Billing"
    assert rows["Renewal"]["sla_label"] == "Overdue"
    assert rows["DNS change"]["sla_label"] == "Due Soon"
    assert rows["DNS change"]["sla_countdown"] == "1h 30m left"
    assert rows["Old"]["sla_label"] == "On Time"
    assert rows["Site down"]["customer_name"] == "Cara Smith"


def test_setting_a_past_due_date_turns_no_sla_into_overdue(
    client: DataClient, settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())
    assert _by_title(screen)["Site down"]["sla_label"] == "No SLA"

    asyncio.run(screen.set_due_date(seeded["urgent"], NOW - timedelta(hours=1)))

    assert _by_title(screen)["Site down"]["sla_label"] == "Overdue"
    assert screen.toasts.pending[-1].description == "Due date updated"

    asyncio.run(screen.set_due_date(seeded["urgent"], None))

    assert _by_title(screen)["Site down"]["sla_label"] == "No SLA"
    assert screen.toasts.pending[-1].description == "Due date cleared"


def test_update_priority_validates_and_writes(
    client: DataClient,
    settings: Settings,
    seeded: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())

    with pytest.raises(ValidationFailed) as excinfo:
        asyncio.run(screen.update_priority(seeded["soon"], "critical"))
    assert "priority" in excinfo.value.field_errors

    asyncio.run(screen.update_priority(seeded["soon"], "high"))

    assert _by_title(screen)["DNS change"]["priority"] == "high"
    assert screen.toasts.pending[-1].description == "Ticket priority updated"
    with session_factory() as session:
        ticket = session.get(Ticket, seeded["soon"])
        assert ticket is not None
        assert ticket.priority == "high"


def test_filters_are_exact_and_combined(client: DataClient, settings: Settings, seeded: dict[str, uuid.UUID]) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())

    screen.set_filter("status", "open")
    screen.set_filter("priority", "urgent")
    assert [row["title"] for row in screen.view] == ["Site down"]

    screen.set_filter("priority", "all")
    screen.set_search("cara")
    assert {row["title"] for row in screen.view} == {"Site down", "Renewal", "DNS change"}


def test_bulk_status_returns_per_row_results(
    client: DataClient,
    settings: Settings,
    seeded: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())
    missing = uuid.uuid4()

    results = asyncio.run(screen.bulk_update_status([seeded["urgent"], missing, seeded["late"]], "resolved"))

    assert [item.ok for item in results] == [True, False, True]
    assert results[1].error == "ticket not found"
    assert [toast.description for toast in screen.toasts.pending] == [GENERIC_ERROR]
    with session_factory() as session:
        resolved = session.get(Ticket, seeded["urgent"])
        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None
    assert _by_title(screen)["Renewal"]["sla_label"] == "On Time"


def test_bulk_status_success_toast(client: DataClient, settings: Settings, seeded: dict[str, uuid.UUID]) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())

    results = asyncio.run(screen.bulk_update_status([seeded["urgent"], seeded["soon"]], "in_progress"))

    assert all(item.ok for item in results)
    assert screen.toasts.pending[-1].description == "Updated 2 tickets"
    with pytest.raises(ValidationFailed):
        asyncio.run(screen.bulk_update_status([seeded["urgent"]], "archived"))


def test_reply_stamps_first_response_once(
    client: DataClient,
    settings: Settings,
    seeded: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client, settings, seeded)
    asyncio.run(screen.load())

    asyncio.run(screen.reply(seeded["urgent"], "Looking into it", is_internal=True))
    with session_factory() as session:
        assert session.get(Ticket, seeded["urgent"]).first_response_at is None

    asyncio.run(screen.reply(seeded["urgent"], "We are on it"))
    with session_factory() as session:
        ticket = session.get(Ticket, seeded["urgent"])
        assert ticket.first_response_at.replace(tzinfo=timezone.utc) == NOW
        assert session.query(Message).count() == 2

    messages = asyncio.run(screen.messages(seeded["urgent"]))
    assert [message["content"] for message in messages] == ["Looking into it", "We are on it"]
    assert screen.toasts.pending[-1].description == "Reply sent"

    with pytest.raises(ValidationFailed):
        asyncio.run(screen.reply(seeded["urgent"], "   "))


def test_status_change_notifies_customer(
    client: DataClient,
    settings: Settings,
    seeded: dict[str, uuid.UUID],
    sent: list[dict],
) -> None:
    screen = _screen(client, settings, seeded)

    async def scenario() -> None:
        await screen.load()
        await screen.update_status(seeded["late"], "closed", notify=True)

    asyncio.run(scenario())

    assert len(sent) == 1
    assert sent[0]["to"] == "cust@example.com"
    assert sent[0]["template"] == "support-ticket-closed"
    assert sent[0]["data"]["ticket_number"] == ticket_number({"id": seeded["late"]})
    assert sent[0]["data"]["status"] == "closed"
    assert sent[0]["data"]["company_name"] == settings.email_company_name


def test_create_ticket_validates_and_notifies(
    client: DataClient,
    settings: Settings,
    seeded: dict[str, uuid.UUID],
    sent: list[dict],
) -> None:
    screen = _screen(client, settings, seeded)

    with pytest.raises(ValidationFailed) as excinfo:
        asyncio.run(screen.create_ticket({"title": "x", "customer_id": seeded["customer"], "priority": "critical"}))
    assert "priority" in excinfo.value.field_errors

    async def scenario() -> None:
        await screen.load()
        await screen.create_ticket({"title": "New request", "customer_id": seeded["customer"]}, notify=True)

    asyncio.run(scenario())

    created = _by_title(screen)["New request"]
    assert (created["status"], created["priority"]) == ("open", "medium")
    assert [payload["template"] for payload in sent] == ["support-ticket-opened"]
