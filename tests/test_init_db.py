"""
Tests for table creation and plan seeding.
"""
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hkup.db.init_db import DEFAULT_PLANS, init_db, seed_plans
from hkup.db.models import Plan
from hkup.services.plan_service import get_active_plan, list_active_plans, resolve_checkout_price


def test_init_db_creates_and_seeds():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    db = sessionmaker(bind=engine)()
    try:
        plans = list_active_plans(db)
        assert [plan.plan_name for plan in plans] == [row["plan_name"] for row in DEFAULT_PLANS]
        assert plans[0].price == Decimal("20.00")
    finally:
        db.close()
        engine.dispose()


def test_seed_plans_is_idempotent(db):
    assert seed_plans(db) == len(DEFAULT_PLANS)
    assert seed_plans(db) == 0
    assert db.query(Plan).count() == len(DEFAULT_PLANS)


def test_get_active_plan_by_name_or_id(db, basic_plan):
    assert get_active_plan(db, "Basic Access").id == basic_plan.id
    assert get_active_plan(db, basic_plan.id).id == basic_plan.id
    assert get_active_plan(db, str(basic_plan.id)).id == basic_plan.id


def test_checkout_price_is_plan_price(basic_plan):
    assert resolve_checkout_price(basic_plan, "NG") == (Decimal("20.00"), "USD")
