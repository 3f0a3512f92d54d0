from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from hkup.db.base import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    country_code = Column(String(2), nullable=True)

    # Entitlement fields, written only by the subscription workflow
    is_subscribed = Column(Boolean, default=False, nullable=False)
    subscription_tier = Column(String, nullable=True)
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
