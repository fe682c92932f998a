"""
Test configuration and shared fixtures for the agency reporting test suite.

Each test gets its own SQLite file. An owner engine without tenant isolation
creates the schema and seeds two agencies; a separate gateway engine with row
security installed runs every report query, the same split as production.
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from app.app import create_app
from app.core.config import PoolSettings
from app.core.database import build_engine, create_all_tables, session_factory
from app.core.dependencies import get_auth_context, get_report_service
from app.property.models import (
    Agency,
    Bedroom,
    Landlord,
    Payment,
    PaymentSchedule,
    Property,
    Tenancy,
    TenancyMember,
    User,
)
from app.query.gateway import ExecutionGateway
from app.reporting.schemas import ReportContext
from app.reporting.service import ReportService
from app.tenancy.row_security import install_row_level_security

TODAY = date(2024, 7, 1)

AGENCY_A = 1
AGENCY_B = 2


# ===== SEED DATA =====


def seed_agencies(session) -> None:
    """Two agencies. Agency A has two landlords; agency B exists to prove isolation."""
    session.add_all(
        [
            Agency(id=AGENCY_A, name="Northside Lettings"),
            Agency(id=AGENCY_B, name="Southside Homes"),
        ]
    )

    # --- Agency A ---
    session.add_all(
        [
            Landlord(id=1, agency_id=AGENCY_A, name="Alice Landlord", email="alice@example.com"),
            Landlord(id=2, agency_id=AGENCY_A, name="Bob Landlord", email="bob@example.com"),
            Property(id=1, agency_id=AGENCY_A, landlord_id=1, address_line1="1 High Street", city="Leeds", postcode="LS1 1AA"),
            Property(id=2, agency_id=AGENCY_A, landlord_id=2, address_line1="2 Low Road", city="Leeds", postcode="LS2 2BB"),
            Bedroom(id=1, agency_id=AGENCY_A, property_id=1, bedroom_name="Room 1", price_pppw=Decimal("150.00"), display_order=1),
            Bedroom(id=2, agency_id=AGENCY_A, property_id=1, bedroom_name="Room 2", price_pppw=Decimal("140.00"), display_order=2),
            Bedroom(id=3, agency_id=AGENCY_A, property_id=1, bedroom_name="Room 3", price_pppw=Decimal("130.00"), display_order=3),
            Bedroom(id=4, agency_id=AGENCY_A, property_id=2, bedroom_name="Front", price_pppw=Decimal("120.00"), display_order=1),
            Bedroom(id=5, agency_id=AGENCY_A, property_id=2, bedroom_name="Back", price_pppw=Decimal("110.00"), display_order=2),
            User(id=1, agency_id=AGENCY_A, email="jane@example.com", first_name="Jane", last_name="Smith", phone="07000 000001"),
            User(id=2, agency_id=AGENCY_A, email="john@example.com", first_name="John", last_name="Doe"),
            User(id=3, agency_id=AGENCY_A, email="wendy@example.com", first_name="Wendy", last_name="House"),
        ]
    )
    session.add_all(
        [
            # Room 1: two active tenancies, the later start is current
            Tenancy(id=1, agency_id=AGENCY_A, property_id=1, status="active", start_date=date(2024, 1, 1), end_date=date(2024, 8, 15)),
            Tenancy(id=3, agency_id=AGENCY_A, property_id=1, status="active", start_date=date(2024, 6, 1), end_date=date(2025, 6, 30)),
            # Room 2
            Tenancy(id=2, agency_id=AGENCY_A, property_id=1, status="active", start_date=date(2024, 6, 1), end_date=date(2025, 5, 31), is_rolling_monthly=True),
            # Room 3: vacant now, two upcoming tenancies and one that ended
            Tenancy(id=4, agency_id=AGENCY_A, property_id=1, status="signed", start_date=date(2024, 9, 1), end_date=date(2025, 8, 31)),
            Tenancy(id=5, agency_id=AGENCY_A, property_id=1, status="pending", start_date=date(2024, 8, 1), end_date=date(2025, 7, 31)),
            Tenancy(id=7, agency_id=AGENCY_A, property_id=1, status="ended", start_date=date(2023, 1, 1), end_date=date(2023, 12, 31)),
            # Whole house let of property 2
            Tenancy(id=6, agency_id=AGENCY_A, property_id=2, tenancy_type="whole_house", status="active", start_date=date(2024, 2, 1), end_date=date(2025, 1, 31)),
        ]
    )
    session.add_all(
        [
            TenancyMember(id=1, agency_id=AGENCY_A, tenancy_id=1, user_id=1, bedroom_id=1, first_name="Jane", surname="Smith", rent_pppw=Decimal("150.00")),
            TenancyMember(id=2, agency_id=AGENCY_A, tenancy_id=2, user_id=2, bedroom_id=2, first_name="John", surname="Doe", rent_pppw=Decimal("140.00")),
            TenancyMember(id=3, agency_id=AGENCY_A, tenancy_id=3, bedroom_id=1, first_name="Sam", surname="Newer", rent_pppw=Decimal("155.00")),
            TenancyMember(id=4, agency_id=AGENCY_A, tenancy_id=4, bedroom_id=3, first_name="Future", surname="Fred", rent_pppw=Decimal("130.00")),
            TenancyMember(id=5, agency_id=AGENCY_A, tenancy_id=5, bedroom_id=3, first_name="Early", surname="Eve", rent_pppw=Decimal("135.00")),
            TenancyMember(id=6, agency_id=AGENCY_A, tenancy_id=6, user_id=3, first_name="Wendy", surname="House", rent_pppw=Decimal("100.00")),
            TenancyMember(id=7, agency_id=AGENCY_A, tenancy_id=6, first_name="Will", surname="House", rent_pppw=Decimal("110.00")),
            TenancyMember(id=8, agency_id=AGENCY_A, tenancy_id=7, bedroom_id=3, first_name="Old", surname="Oscar", rent_pppw=Decimal("120.00")),
        ]
    )
    session.add_all(
        [
            PaymentSchedule(id=1, agency_id=AGENCY_A, tenancy_id=1, tenancy_member_id=1, due_date=date(2024, 5, 1), amount_due=Decimal("600.00"), status="paid"),
            PaymentSchedule(id=2, agency_id=AGENCY_A, tenancy_id=1, tenancy_member_id=1, due_date=date(2024, 6, 1), amount_due=Decimal("600.00"), status="partial"),
            PaymentSchedule(id=3, agency_id=AGENCY_A, tenancy_id=1, tenancy_member_id=1, due_date=date(2024, 6, 15), amount_due=Decimal("600.00"), status="overdue"),
            PaymentSchedule(id=4, agency_id=AGENCY_A, tenancy_id=1, tenancy_member_id=1, due_date=date(2024, 7, 15), amount_due=Decimal("600.00"), status="pending"),
            PaymentSchedule(id=5, agency_id=AGENCY_A, tenancy_id=2, tenancy_member_id=2, due_date=date(2024, 6, 1), amount_due=Decimal("560.00"), status="paid"),
            Payment(id=1, agency_id=AGENCY_A, payment_schedule_id=1, amount=Decimal("600.00"), payment_date=date(2024, 5, 1)),
            Payment(id=2, agency_id=AGENCY_A, payment_schedule_id=2, amount=Decimal("200.00"), payment_date=date(2024, 6, 3)),
            Payment(id=3, agency_id=AGENCY_A, payment_schedule_id=5, amount=Decimal("300.00"), payment_date=date(2024, 6, 1)),
            Payment(id=4, agency_id=AGENCY_A, payment_schedule_id=5, amount=Decimal("260.00"), payment_date=date(2024, 6, 2)),
        ]
    )

    # --- Agency B ---
    session.add_all(
        [
            Landlord(id=3, agency_id=AGENCY_B, name="Zed Landlord"),
            Property(id=3, agency_id=AGENCY_B, landlord_id=3, address_line1="99 Other Agency Lane", city="York"),
            Bedroom(id=6, agency_id=AGENCY_B, property_id=3, bedroom_name="Attic", price_pppw=Decimal("99.00"), display_order=1),
            User(id=4, agency_id=AGENCY_B, email="bea@example.com", first_name="Bea", last_name="Other"),
            Tenancy(id=8, agency_id=AGENCY_B, property_id=3, status="active", start_date=date(2024, 1, 1), end_date=date(2024, 7, 20)),
            TenancyMember(id=9, agency_id=AGENCY_B, tenancy_id=8, user_id=4, bedroom_id=6, first_name="Bea", surname="Other", rent_pppw=Decimal("99.00")),
            PaymentSchedule(id=6, agency_id=AGENCY_B, tenancy_id=8, tenancy_member_id=9, due_date=date(2024, 6, 10), amount_due=Decimal("999.00"), status="overdue"),
        ]
    )
    session.commit()


# ===== DATABASE SETUP =====


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'agency_reports.db'}"


@pytest.fixture
def owner_engine(database_url):
    """Schema owner connection, no tenant isolation. Used only for setup."""
    engine = create_engine(database_url, connect_args={"check_same_thread": False})
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_db(owner_engine):
    SessionLocal = session_factory(owner_engine)
    session = SessionLocal()
    try:
        seed_agencies(session)
    finally:
        session.close()
    return owner_engine


@pytest.fixture
def pool_settings():
    return PoolSettings(
        pool_size=3,
        max_overflow=0,
        pool_timeout=0.2,
        pool_recycle=1800,
        statement_timeout_ms=0,
        retry_after=0.01,
    )


@pytest.fixture
def make_gateway(seeded_db, database_url):
    """Factory for gateways on the seeded database, disposed after the test."""
    gateways = []

    def _make(settings: PoolSettings, row_security: bool = True) -> ExecutionGateway:
        engine = build_engine(database_url, settings)
        if row_security:
            install_row_level_security(engine)
        gateway = ExecutionGateway(engine, settings)
        gateways.append(gateway)
        return gateway

    yield _make
    for gateway in gateways:
        gateway.dispose()


@pytest.fixture
def gateway(make_gateway, pool_settings):
    return make_gateway(pool_settings)


@pytest.fixture
def report_service(gateway):
    return ReportService(gateway, clock=lambda: TODAY, sleep=lambda seconds: None)


@pytest.fixture
def today():
    return TODAY


# ===== CONTEXTS =====


@pytest.fixture
def admin_context():
    return ReportContext(user_role="admin", user_id=10, agency_id=AGENCY_A)


@pytest.fixture
def landlord_context():
    return ReportContext(user_role="landlord", user_id=11, landlord_id=1, agency_id=AGENCY_A)


@pytest.fixture
def agency_b_admin_context():
    return ReportContext(user_role="admin", user_id=20, agency_id=AGENCY_B)


# ===== API CLIENT =====


@pytest.fixture
def auth_state(admin_context):
    """Mutable holder for the context the fake auth layer hands to each request."""
    return {"context": admin_context}


@pytest.fixture
def client(report_service, auth_state):
    app = create_app()
    app.dependency_overrides[get_report_service] = lambda: report_service
    app.dependency_overrides[get_auth_context] = lambda: auth_state["context"]
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def unauthenticated_client(report_service):
    app = create_app()
    app.dependency_overrides[get_report_service] = lambda: report_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
