"""
Create tables and seed the default plan catalog.

Run with: python -m hkup.db.init_db
"""
import logging
from decimal import Decimal
from sqlalchemy.orm import Session, sessionmaker

from hkup.db.base import Base
from hkup.db.models import Plan

logger = logging.getLogger(__name__)

DEFAULT_PLANS = [
    {
        "plan_name": "Basic Access",
        "description": "Full access to the Hkup platform",
        "price": Decimal("20.00"),
        "currency": "USD",
        "tier": "basic",
        "period_days": 30,
        "features": [
            "Full platform access",
            "Browse services",
            "Create services",
            "Secure messaging",
            "Trust system",
            "24/7 support",
        ],
    },
]


def seed_plans(db: Session) -> int:
    """Insert default plans that are missing. Returns the number inserted."""
    inserted = 0
    for plan_row in DEFAULT_PLANS:
        exists = db.query(Plan).filter(Plan.plan_name == plan_row["plan_name"]).first()
        if exists:
            continue
        db.add(Plan(**plan_row))
        inserted += 1
    db.commit()
    if inserted:
        logger.info(f"Seeded {inserted} subscription plan(s)")
    return inserted


def init_db(engine) -> None:
    """Create all tables and seed plans."""
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine)()
    try:
        seed_plans(db)
    finally:
        db.close()


if __name__ == "__main__":
    from hkup.db.session import engine

    logging.basicConfig(level=logging.INFO)
    init_db(engine)
