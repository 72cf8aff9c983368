from __future__ import annotations

import uuid
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext, get_session_context
from agencydesk.core.config import get_settings
from agencydesk.core.database import Base, build_engine
from agencydesk.main import app
from agencydesk.store.client import DataClient, get_data_client
from agencydesk.store.models import DomainTldPricing


@pytest.fixture()
def session_factory(tmp_path: Path) -> Generator[sessionmaker[Session], None, None]:
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'agencydesk.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def session_holder() -> dict[str, SessionContext]:
    return {"session": SessionContext(user_id="metrics-admin", role="admin")}


@pytest.fixture()
def client(
    session_factory: sessionmaker[Session],
    session_holder: dict[str, SessionContext],
) -> Generator[TestClient, None, None]:
    data_client = DataClient(session_factory)

    app.dependency_overrides[get_data_client] = lambda: data_client
    app.dependency_overrides[get_session_context] = lambda: session_holder["session"]
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_store_and_screen_metrics(
    client: TestClient,
    session_factory: sessionmaker[Session],
) -> None:
    with session_factory() as session:
        session.add(DomainTldPricing(tld=".io"))
        session.commit()

    assert client.get("/health").status_code == 200
    bulk = client.post(
        "/api/admin/pricing/domains/bulk-adjust",
        json={"row_ids": [str(uuid.uuid4())], "percent": 5},
    )
    assert bulk.status_code == 200

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "store_operations_total" in body
    assert "screen_mutations_total" in body
    assert "bulk_row_failures_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/admin/pricing/domains/bulk-adjust"' in body
    assert 'table="domain_tld_pricing"' in body
    assert 'screen="domain_pricing"' in body


def test_metrics_require_admin(client: TestClient, session_holder: dict[str, SessionContext]) -> None:
    session_holder["session"] = SessionContext(user_id="someone", role="customer")

    assert client.get("/metrics").status_code == 403


def test_metrics_disabled_returns_404(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    assert client.get("/metrics").status_code == 404
