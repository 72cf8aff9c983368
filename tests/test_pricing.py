from __future__ import annotations

import asyncio
import uuid
from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings
from agencydesk.core.database import Base, build_engine
from agencydesk.errors import DependentRecordsError, ValidationFailed
from agencydesk.screens.pricing import (
    DomainPricingController,
    HostingPackagesController,
    ServicePricingController,
    adjust_price,
    adjusted_fields,
)
from agencydesk.screens.toasts import GENERIC_ERROR
from agencydesk.store.client import DataClient
from agencydesk.store.models import DomainTldPricing, HostingAccount, HostingPackage, Profile, ServicePricingDefault


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
def settings() -> Settings:
    return Settings(functions_url="http://functions.test/v1", functions_api_key="test-key")


@pytest.fixture()
def client(session_factory: sessionmaker[Session], settings: Settings) -> DataClient:
    return DataClient(session_factory, settings=settings)


def test_adjust_price_rounds_to_pence() -> None:
    assert adjust_price(Decimal("10.00"), -10) == Decimal("9.00")
    assert adjust_price("19.99", 15) == Decimal("22.99")
    assert adjust_price(Decimal("0.05"), 10) == Decimal("0.06")
    assert adjust_price(12.5, 0) == Decimal("12.50")
    assert adjust_price(Decimal("80"), -100) == Decimal("0.00")
    assert adjust_price(None, 25) is None


@pytest.mark.parametrize("price", ["0.05", "9.99", "10.00", "19.99", "99.99", "249.00"])
def test_raise_then_reverse_returns_within_a_penny(price: str) -> None:
    raised = adjust_price(Decimal(price), 10)
    restored = adjust_price(raised, Decimal("-9.09"))

    assert restored is not None
    assert abs(restored - Decimal(price)) <= Decimal("0.01")


def test_adjusted_fields_skips_empty_prices() -> None:
    row = {"reg_1y_gbp": Decimal("10.00"), "reg_2y_gbp": None, "renew_1y_gbp": Decimal("20.00")}

    adjusted = adjusted_fields(row, ("reg_1y_gbp", "reg_2y_gbp", "renew_1y_gbp", "transfer_1y_gbp"), -10)

    assert adjusted == {"reg_1y_gbp": Decimal("9.00"), "renew_1y_gbp": Decimal("18.00")}


def test_bulk_adjust_applies_percent_per_row(
    client: DataClient,
    settings: Settings,
    session_factory: sessionmaker[Session],
) -> None:
    with session_factory() as session:
        com = DomainTldPricing(tld=".com", reg_1y_gbp=Decimal("10.00"), renew_1y_gbp=Decimal("12.00"))
        net = DomainTldPricing(tld=".net", reg_1y_gbp=Decimal("8.50"))
        session.add_all([com, net])
        session.commit()
        ids = [com.id, net.id]

    screen = DomainPricingController(client, ADMIN, settings=settings)
    asyncio.run(screen.load())
    results = asyncio.run(screen.bulk_adjust(ids, -10))

    assert [item.ok for item in results] == [True, True]
    by_tld = {row["tld"]: row for row in screen.rows}
    assert by_tld[".com"]["reg_1y_gbp"] == Decimal("9.00")
    assert by_tld[".com"]["renew_1y_gbp"] == Decimal("10.80")
    assert by_tld[".com"]["reg_2y_gbp"] is None
    assert by_tld[".net"]["reg_1y_gbp"] == Decimal("7.65")
    assert screen.toasts.pending[-1].description == "Adjusted 2 domain prices by -10%"


def test_bulk_adjust_round_trip_through_the_screen(
    client: DataClient,
    settings: Settings,
    session_factory: sessionmaker[Session],
) -> None:
    with session_factory() as session:
        com = DomainTldPricing(tld=".com", reg_1y_gbp=Decimal("10.00"), renew_1y_gbp=Decimal("12.00"))
        session.add(com)
        session.commit()
        com_id = com.id

    screen = DomainPricingController(client, ADMIN, settings=settings)
    asyncio.run(screen.load())
    asyncio.run(screen.bulk_adjust([com_id], 10))
    assert screen.rows[0]["reg_1y_gbp"] == Decimal("11.00")

    asyncio.run(screen.bulk_adjust([com_id], Decimal("-9.09")))

    row = screen.rows[0]
    assert abs(row["reg_1y_gbp"] - Decimal("10.00")) <= Decimal("0.01")
    assert abs(row["renew_1y_gbp"] - Decimal("12.00")) <= Decimal("0.01")


def test_bulk_adjust_reports_missing_rows_with_one_generic_toast(
    client: DataClient,
    settings: Settings,
    session_factory: sessionmaker[Session],
) -> None:
    with session_factory() as session:
        seo = ServicePricingDefault(service_name="SEO audit", default_price=Decimal("250.00"), hourly_rate=Decimal("60.00"))
        session.add(seo)
        session.commit()
        seo_id = seo.id

    missing = uuid.uuid4()
    screen = ServicePricingController(client, ADMIN, settings=settings)
    asyncio.run(screen.load())
    results = asyncio.run(screen.bulk_adjust([seo_id, missing], 20))

    assert results[0].ok is True
    assert results[1].ok is False
    assert results[1].row_id == str(missing)
    assert results[1].error == "service price not found"
    destructive = [toast for toast in screen.toasts.pending if toast.variant == "destructive"]
    assert len(destructive) == 1
    assert destructive[0].description == GENERIC_ERROR
    assert screen.rows[0]["default_price"] == Decimal("300.00")
    assert screen.rows[0]["hourly_rate"] == Decimal("72.00")


def test_bulk_adjust_with_no_selection_is_a_no_op(client: DataClient, settings: Settings) -> None:
    screen = DomainPricingController(client, ADMIN, settings=settings)
    asyncio.run(screen.load())

    assert asyncio.run(screen.bulk_adjust([], 10)) == []
    assert screen.toasts.pending == []


def test_save_quantizes_prices_and_requires_name(client: DataClient, settings: Settings) -> None:
    screen = HostingPackagesController(client, ADMIN, settings=settings)

    with pytest.raises(ValidationFailed):
        asyncio.run(screen.save({"name": " ", "price_monthly": "5"}))

    asyncio.run(screen.save({"name": "Starter", "price_monthly": "4.999", "price_yearly": 50}))
    assert screen.rows[0]["price_monthly"] == Decimal("5.00")
    assert screen.rows[0]["price_yearly"] == Decimal("50.00")

    asyncio.run(screen.save({"name": "Starter Plus"}, row_id=screen.rows[0]["id"]))
    assert [row["name"] for row in screen.rows] == ["Starter Plus"]
    assert screen.toasts.pending[-1].description == "Hosting package updated"


def test_package_in_use_cannot_be_deleted(
    client: DataClient,
    settings: Settings,
    session_factory: sessionmaker[Session],
) -> None:
    with session_factory() as session:
        customer = Profile(email="host@example.com", first_name="Hal")
        package = HostingPackage(name="Business", price_monthly=Decimal("9.99"))
        session.add_all([customer, package])
        session.flush()
        session.add(HostingAccount(customer_id=customer.id, package_id=package.id, domain="hal.example"))
        session.commit()
        package_id = package.id

    screen = HostingPackagesController(client, ADMIN, settings=settings)
    asyncio.run(screen.load())
    with pytest.raises(DependentRecordsError) as excinfo:
        asyncio.run(screen.delete(package_id, confirm=lambda: True))

    assert "Deactivate it instead of deleting" in excinfo.value.message
    assert screen.toasts.pending[-1].description == excinfo.value.message
    assert [row["name"] for row in screen.rows] == ["Business"]
