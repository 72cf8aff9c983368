from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Generator
from datetime import date, datetime, timezone
from pathlib import Path

import httpx
import pytest
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings
from agencydesk.core.database import Base, build_engine
from agencydesk.errors import DataError, ValidationFailed
from agencydesk.screens.hosting import DomainsController, HostingAccountsController
from agencydesk.store.client import DataClient
from agencydesk.store.models import Domain, HostingAccount, HostingPackage, Profile


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
ADMIN = SessionContext(user_id=str(uuid.uuid4()), email="admin@agency.example.com", role="admin")


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
def seeded(session_factory: sessionmaker[Session]) -> dict[str, uuid.UUID]:
    with session_factory() as session:
        ada = Profile(email="ada@example.com", first_name="Ada", last_name="King")
        package = HostingPackage(name="Starter")
        session.add_all([ada, package])
        session.flush()
        domain = Domain(customer_id=ada.id, domain_name="engines.co.uk", tld=".co.uk")
        pending = HostingAccount(customer_id=ada.id, package_id=package.id, domain="engines.co.uk", status="pending")
        live = HostingAccount(customer_id=ada.id, package_id=package.id, domain="king.dev", status="active")
        session.add_all([domain, pending, live])
        session.commit()
        return {"domain": domain.id, "pending": pending.id, "live": live.id}


def _client(
    session_factory: sessionmaker[Session], settings: Settings, sent: list[dict], status: int = 200
) -> DataClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append({"path": request.url.path, "body": json.loads(request.content)})
        if status >= 400:
            return httpx.Response(status, json={"error": "WHM unreachable"})
        return httpx.Response(status, json={"success": True})

    return DataClient(
        session_factory,
        settings=settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_activating_a_domain_starts_a_one_year_term(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    screen = DomainsController(_client(session_factory, settings, []), ADMIN, settings=settings, clock=lambda: NOW)

    async def scenario() -> None:
        await screen.load()
        await screen.update_status(seeded["domain"], "active", notes="Registered via OpenProvider")

    asyncio.run(scenario())

    row = screen.rows[0]
    assert row["customer_name"] == "Ada King"
    assert row["customer_email"] == "ada@example.com"
    assert row["status"] == "active"
    assert row["registration_date"] == date(2026, 3, 10)
    assert row["expiry_date"] == date(2027, 3, 10)
    assert row["notes"] == "Registered via OpenProvider"
    assert screen.toasts.pending[-1].description == "Domain status has been updated successfully"


def test_domain_status_must_be_known(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    screen = DomainsController(_client(session_factory, settings, []), ADMIN, settings=settings)
    asyncio.run(screen.load())

    with pytest.raises(ValidationFailed) as excinfo:
        asyncio.run(screen.update_status(seeded["domain"], "parked"))

    assert "status" in excinfo.value.field_errors
    assert screen.rows[0]["status"] == "pending"


def test_provision_invokes_the_hosting_function(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    sent: list[dict] = []
    screen = HostingAccountsController(_client(session_factory, settings, sent), ADMIN, settings=settings)

    async def scenario() -> None:
        await screen.load()
        await screen.provision(seeded["pending"], "create")

    asyncio.run(scenario())

    assert sent == [
        {
            "path": "/v1/hosting-provision",
            "body": {"subscriptionId": str(seeded["pending"]), "action": "create"},
        }
    ]
    assert screen.toasts.pending[-1].description == "Hosting account has been updated successfully"
    screen.set_search("starter")
    assert len(screen.view) == 2


def test_provision_action_must_match_account_status(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    sent: list[dict] = []
    screen = HostingAccountsController(_client(session_factory, settings, sent), ADMIN, settings=settings)
    asyncio.run(screen.load())

    with pytest.raises(ValidationFailed):
        asyncio.run(screen.provision(seeded["live"], "unsuspend"))
    with pytest.raises(ValidationFailed):
        asyncio.run(screen.provision(seeded["live"], "terminate"))

    assert sent == []


def test_failed_provision_surfaces_a_destructive_toast(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    screen = HostingAccountsController(_client(session_factory, settings, [], status=502), ADMIN, settings=settings)
    asyncio.run(screen.load())

    with pytest.raises(DataError) as excinfo:
        asyncio.run(screen.provision(seeded["live"], "suspend"))

    assert excinfo.value.code == "http_502"
    toast = screen.toasts.pending[-1]
    assert toast.variant == "destructive"
    assert toast.description == "WHM unreachable"


def test_update_notes_persists(
    session_factory: sessionmaker[Session], settings: Settings, seeded: dict[str, uuid.UUID]
) -> None:
    screen = HostingAccountsController(_client(session_factory, settings, []), ADMIN, settings=settings)

    async def scenario() -> None:
        await screen.load()
        await screen.update_notes(seeded["live"], "Migrated from old server")

    asyncio.run(scenario())

    live = next(row for row in screen.rows if row["id"] == seeded["live"])
    assert live["notes"] == "Migrated from old server"
    assert live["package_name"] == "Starter"
    assert screen.toasts.pending[-1].description == "Subscription notes have been updated successfully"
