"""SQLAlchemy ORM models."""
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from credit_server.core.clock import utcnow
from credit_server.infrastructure.database.base import Base

from .types import MicroCredits


def generate_uuid() -> str:
    return str(uuid.uuid4())


CREDIT_AMOUNT = MicroCredits()


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    wallet_address = Column(String(255), unique=True, index=True)
    location = Column(String(255))
    website = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    applications = relationship("Application", back_populates="company", cascade="all, delete-orphan")
    devices = relationship("Device", back_populates="company")
    credit = relationship("CompanyCredit", back_populates="company", uselist=False)


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    api_key = Column(String(128), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    company = relationship("Company", back_populates="applications")


class Device(Base):
    __tablename__ = "devices"

    id = Column(String(64), primary_key=True, default=generate_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=True)
    device_type = Column(String(20), nullable=False, default="SEQUESTER")  # SEQUESTER, EMITTER
    name = Column(String(150))
    location = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    last_seen_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    company = relationship("Company", back_populates="devices")
    transactions = relationship("CreditTransaction", back_populates="device")


class CreditAccrual(Base):
    """One row per accrued window; the latest ``window_end`` is the device watermark."""

    __tablename__ = "credit_accrual"
    __table_args__ = (UniqueConstraint("device_id", "window_end", name="uq_credit_accrual_device_window"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(64), ForeignKey("devices.id"), nullable=False, index=True)
    window_start = Column(DateTime(timezone=True), nullable=False)
    window_end = Column(DateTime(timezone=True), nullable=False)
    credits_earned = Column(CREDIT_AMOUNT, nullable=False, default=0)
    co2_reduced = Column(CREDIT_AMOUNT, nullable=False, default=0)
    energy_saved = Column(CREDIT_AMOUNT, nullable=False, default=0)
    samples_used = Column(Integer, nullable=False, default=0)
    transaction_id = Column(String(36), ForeignKey("credit_transaction.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CreditTransaction(Base):
    __tablename__ = "credit_transaction"
    __table_args__ = (
        Index("ix_credit_transaction_device_status", "device_id", "status"),
        # 每台设备最多一条 PENDING 的 MINT
        Index(
            "uq_credit_transaction_pending_mint",
            "device_id",
            unique=True,
            sqlite_where=text("status = 'PENDING' AND transaction_type = 'MINT'"),
            postgresql_where=text("status = 'PENDING' AND transaction_type = 'MINT'"),
        ),
        CheckConstraint("amount >= 0", name="ck_credit_transaction_amount"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    device_id = Column(String(64), ForeignKey("devices.id"), nullable=False)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    transaction_type = Column(String(10), nullable=False)  # MINT, BURN
    amount = Column(CREDIT_AMOUNT, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")  # PENDING, CONFIRMED, FAILED
    external_ref = Column(String(255))
    error_message = Column(Text)
    evidence = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    device = relationship("Device", back_populates="transactions")


class CompanyCredit(Base):
    __tablename__ = "company_credit"
    __table_args__ = (
        CheckConstraint("current_credit >= 0", name="ck_company_credit_current_non_negative"),
        CheckConstraint("pending_burn >= 0", name="ck_company_credit_pending_burn_non_negative"),
    )

    company_id = Column(String(36), ForeignKey("companies.id"), primary_key=True)
    total_credit = Column(CREDIT_AMOUNT, nullable=False, default=0)
    current_credit = Column(CREDIT_AMOUNT, nullable=False, default=0)
    sold_credit = Column(CREDIT_AMOUNT, nullable=False, default=0)
    pending_burn = Column(CREDIT_AMOUNT, nullable=False, default=0)
    retired_credit = Column(CREDIT_AMOUNT, nullable=False, default=0)
    offer_price = Column(CREDIT_AMOUNT)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="credit")


class CreditSaleHistory(Base):
    __tablename__ = "credit_sale_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    sold_amount = Column(CREDIT_AMOUNT, nullable=False)
    sold_price = Column(CREDIT_AMOUNT, nullable=False)
    buyer_info = Column(String(255))
    sold_at = Column(DateTime(timezone=True), default=utcnow)
