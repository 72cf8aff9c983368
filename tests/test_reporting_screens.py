from __future__ import annotations

import asyncio
import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings
from agencydesk.core.database import Base, build_engine
from agencydesk.screens.analytics import AnalyticsController
from agencydesk.screens.base import ScreenState
from agencydesk.screens.dashboard import CrmDashboardController
from agencydesk.screens.support_reporting import SupportReportingController
from agencydesk.store.client import DataClient
from agencydesk.store.models import Lead, LeadActivity, PipelineStage, Profile, Ticket, TicketCategory


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
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
def crm(session_factory: sessionmaker[Session]) -> None:
    with session_factory() as session:
        new = PipelineStage(name="New", stage_order=1)
        won = PipelineStage(name="Won", stage_order=2)
        session.add_all([new, won])
        session.flush()
        fresh = Lead(
            first_name="Ada",
            last_name="King",
            email="ada@example.com",
            source="Referral",
            deal_value=Decimal("1000"),
            pipeline_stage_id=new.id,
            created_at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        )
        session.add_all(
            [
                fresh,
                Lead(
                    first_name="Bo",
                    email="bo@example.com",
                    source="Website",
                    deal_value=Decimal("2000"),
                    converted_to_customer=True,
                    pipeline_stage_id=won.id,
                    created_at=datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc),
                ),
                Lead(
                    first_name="Cy",
                    email="cy@example.com",
                    source="Referral",
                    pipeline_stage_id=new.id,
                    created_at=datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc),
                ),
                Profile(
                    email="bo@example.com",
                    first_name="Bo",
                    created_at=datetime(2026, 1, 20, 9, 0, tzinfo=timezone.utc),
                ),
            ]
        )
        session.flush()
        session.add(LeadActivity(lead_id=fresh.id, activity_type="call", description="Intro call"))
        session.commit()


def test_dashboard_stat_cards_and_second_wave(client: DataClient, crm: None) -> None:
    screen = CrmDashboardController(client, ADMIN, settings=Settings(), clock=lambda: NOW)
    asyncio.run(screen.load())

    assert screen.state == ScreenState.LOADED
    assert screen.stats == {
        "total_leads": 3,
        "new_this_month": 2,
        "converted_leads": 1,
        "conversion_rate": 33.3,
        "pipeline_value": Decimal("1000"),
    }
    assert [(item["source"], item["count"]) for item in screen.top_sources] == [("Referral", 2), ("Website", 1)]
    assert [item["lead_name"] for item in screen.recent_activities] == ["Ada King"]


def test_dashboard_on_empty_store_has_zero_rates(client: DataClient) -> None:
    screen = CrmDashboardController(client, ADMIN, settings=Settings(), clock=lambda: NOW)
    asyncio.run(screen.load())

    assert screen.stats["conversion_rate"] == 0.0
    assert screen.top_sources == []


def test_analytics_series_for_six_months(client: DataClient, crm: None) -> None:
    screen = AnalyticsController(client, ADMIN, settings=Settings(), clock=lambda: NOW)
    asyncio.run(screen.load())

    trend = {item["key"]: item for item in screen.series["conversion_trend"]}
    assert list(trend) == ["2025-09", "2025-10", "2025-11", "2025-12", "2026-01", "2026-02", "2026-03"]
    assert (trend["2026-01"]["leads"], trend["2026-01"]["conversions"], trend["2026-01"]["rate"]) == (1, 1, 100.0)
    assert (trend["2026-03"]["leads"], trend["2026-03"]["rate"]) == (2, 0.0)
    assert trend["2025-10"]["rate"] == 0.0

    assert screen.series["summary"]["total_leads"] == 3
    assert screen.series["summary"]["new_customers"] == 1
    assert screen.series["summary"]["average_deal_value"] == Decimal("1500.00")
    funnel = screen.series["pipeline_funnel"]
    assert [(stage["stage"], stage["count"]) for stage in funnel] == [("New", 2), ("Won", 1)]
    assert funnel[1]["conversion_from_previous"] == 50.0
    assert screen.series["activity_metrics"] == [{"activity": "Call", "count": 1}]
    assert "deal_velocity" not in screen.series
    assert screen.export_csv().splitlines()[0] == "Month,Leads,Conversions,Rate"


def test_analytics_range_change_reloads(client: DataClient, crm: None) -> None:
    screen = AnalyticsController(client, ADMIN, settings=Settings(), clock=lambda: NOW)
    asyncio.run(screen.load())

    asyncio.run(screen.set_time_range("1m"))

    assert [item["key"] for item in screen.series["conversion_trend"]] == ["2026-02", "2026-03"]
    assert screen.series["summary"]["total_leads"] == 2
    with pytest.raises(ValueError):
        asyncio.run(screen.set_time_range("2w"))


def test_synthetic_series_are_opt_in_and_flagged(client: DataClient, crm: None) -> None:
    settings = Settings(analytics_synthetic_series=True, analytics_seed=7)
    first = AnalyticsController(client, ADMIN, settings=settings, clock=lambda: NOW)
    second = AnalyticsController(client, ADMIN, settings=settings, clock=lambda: NOW)
    asyncio.run(first.load())
    asyncio.run(second.load())

    assert first.series["deal_velocity"]["synthetic"] is True
    assert first.series["sales_rep_performance"]["synthetic"] is True
    assert first.series["deal_velocity"] == second.series["deal_velocity"]


def test_support_report_for_last_week(client: DataClient, session_factory: sessionmaker[Session]) -> None:
    with session_factory() as session:
        customer = Profile(email="cust@example.com", first_name="Cara")
        billing = TicketCategory(name="Billing")
        session.add_all([customer, billing])
        session.flush()
        session.add_all(
            [
                Ticket(
                    customer_id=customer.id,
                    category_id=billing.id,
                    title="Refund",
                    status="resolved",
                    priority="high",
                    created_at=NOW - timedelta(days=2),
                    first_response_at=NOW - timedelta(days=2) + timedelta(minutes=30),
                    resolved_at=NOW - timedelta(days=1),
                ),
                Ticket(customer_id=customer.id, title="Question", created_at=NOW - timedelta(days=1)),
                Ticket(customer_id=customer.id, title="Ancient", created_at=NOW - timedelta(days=20)),
            ]
        )
        session.commit()

    screen = SupportReportingController(client, ADMIN, settings=Settings(), clock=lambda: NOW, days=7)
    asyncio.run(screen.load())

    stats = screen.report["stats"]
    assert stats["total"] == 2
    assert stats["by_status"]["resolved"] == 1
    assert stats["by_priority"] == {"low": 0, "medium": 1, "high": 1, "urgent": 0}
    assert stats["resolution_rate"] == 50.0
    assert (stats["avg_resolution_hours"], stats["avg_resolution_display"]) == (24.0, "24.0h")
    assert stats["avg_first_response_display"] == "30m"
    assert screen.report["categories"] == [{"name": "Billing", "count": 1, "color": "#6b7280"}]
    daily = {item["date"]: item for item in screen.report["daily"]}
    assert len(daily) == 7
    assert daily["2026-03-08"]["created"] == 1
    assert (daily["2026-03-09"]["created"], daily["2026-03-09"]["resolved"]) == (1, 1)

    with pytest.raises(ValueError):
        asyncio.run(screen.set_days(14))
