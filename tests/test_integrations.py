from __future__ import annotations

import asyncio
import uuid
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings
from agencydesk.core.database import Base, build_engine
from agencydesk.errors import PermissionDenied
from agencydesk.screens.integrations import CredentialField, IntegrationsController
from agencydesk.store.client import DataClient
from agencydesk.store.models import ApiIntegration


NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
SUPER_ADMIN = SessionContext(user_id=str(uuid.uuid4()), role="admin", is_super_admin=True)
ADMIN = SessionContext(user_id=str(uuid.uuid4()), role="admin")


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
def client(session_factory: sessionmaker[Session]) -> DataClient:
    return DataClient(session_factory, settings=Settings())


@pytest.fixture()
def integrations(session_factory: sessionmaker[Session]) -> dict[str, uuid.UUID]:
    with session_factory() as session:
        rows = [
            ApiIntegration(integration_name="WHM / cPanel", integration_type="whm_cpanel"),
            ApiIntegration(integration_name="OpenProvider", integration_type="openprovider"),
            ApiIntegration(integration_name="Google AI", integration_type="google_ai"),
            ApiIntegration(integration_name="Legacy Billing", integration_type="legacy_billing"),
        ]
        session.add_all(rows)
        session.commit()
        return {row.integration_type: row.id for row in rows}


def _screen(client: DataClient, session: SessionContext = SUPER_ADMIN) -> IntegrationsController:
    screen = IntegrationsController(client, session, settings=Settings(), clock=lambda: NOW)
    asyncio.run(screen.load())
    return screen


def _answers(values: dict[str, str]):  # type: ignore[no-untyped-def]
    asked: list[CredentialField] = []

    def prompt(field: CredentialField) -> str | None:
        asked.append(field)
        return values.get(field.key, field.default)

    return prompt, asked


def test_only_supported_types_are_listed(client: DataClient, integrations: dict[str, uuid.UUID]) -> None:
    screen = _screen(client)

    assert [row["integration_name"] for row in screen.rows] == ["Google AI", "OpenProvider", "WHM / cPanel"]


def test_connect_stores_token_and_config(
    client: DataClient,
    integrations: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client)
    prompt, asked = _answers({"access_token": "whm-token", "server_ip": "10.0.0.5"})

    asyncio.run(screen.connect(integrations["whm_cpanel"], prompt))

    assert [field.key for field in asked] == ["whm_url", "whm_username", "access_token", "package_template", "server_ip"]
    with session_factory() as session:
        row = session.get(ApiIntegration, integrations["whm_cpanel"])
        assert row.is_connected is True
        assert row.access_token == "whm-token"
        assert row.config_data == {
            "whm_url": "https://your-whm-server.com:2087",
            "whm_username": "root",
            "package_template": "starter,business,professional",
            "server_ip": "10.0.0.5",
            "auto_provision": True,
        }
        assert row.last_sync_at.replace(tzinfo=timezone.utc) == NOW
    assert screen.toasts.pending[-1].description == "WHM / cPanel integration connected successfully"


def test_cancelled_prompt_writes_nothing(
    client: DataClient,
    integrations: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client)
    prompt, asked = _answers({"access_token": ""})

    assert asyncio.run(screen.connect(integrations["openprovider"], prompt)) is None

    assert [field.key for field in asked] == ["access_token"]
    with session_factory() as session:
        assert session.get(ApiIntegration, integrations["openprovider"]).is_connected is False
    assert screen.toasts.pending == []


def test_google_ai_connects_on_confirmation(
    client: DataClient,
    integrations: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client)
    prompt, asked = _answers({})

    assert asyncio.run(screen.connect(integrations["google_ai"], prompt, confirm=lambda: False)) is None
    asyncio.run(screen.connect(integrations["google_ai"], prompt, confirm=lambda: True))

    assert asked == []
    with session_factory() as session:
        assert session.get(ApiIntegration, integrations["google_ai"]).is_connected is True


def test_disconnect_clears_credentials(
    client: DataClient,
    integrations: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client)
    prompt, _ = _answers({"access_token": "op-key"})
    asyncio.run(screen.connect(integrations["openprovider"], prompt))

    asyncio.run(screen.disconnect(integrations["openprovider"], confirm=lambda: True))

    with session_factory() as session:
        row = session.get(ApiIntegration, integrations["openprovider"])
        assert (row.is_connected, row.access_token, row.config_data, row.last_sync_at) == (False, None, {}, None)
    assert screen.toasts.pending[-1].description == "OpenProvider has been disconnected"


def test_plain_admin_cannot_change_integrations(
    client: DataClient,
    integrations: dict[str, uuid.UUID],
    session_factory: sessionmaker[Session],
) -> None:
    screen = _screen(client, ADMIN)
    prompt, asked = _answers({"access_token": "nope"})

    with pytest.raises(PermissionDenied):
        asyncio.run(screen.connect(integrations["openprovider"], prompt))
    with pytest.raises(PermissionDenied):
        asyncio.run(screen.disconnect(integrations["openprovider"]))

    assert asked == []
    assert screen.toasts.pending[-1].title == "Access Denied"
    with session_factory() as session:
        assert session.get(ApiIntegration, integrations["openprovider"]).access_token is None


def test_sorting_by_config_data_keeps_all_rows(client: DataClient, integrations: dict[str, uuid.UUID]) -> None:
    screen = _screen(client)
    prompt, _ = _answers({"access_token": "op-key"})
    asyncio.run(screen.connect(integrations["openprovider"], prompt))

    screen.set_sort("config_data")
    assert [row["integration_name"] for row in screen.view] == ["OpenProvider", "Google AI", "WHM / cPanel"]
