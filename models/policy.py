"""
Policy models
- policies: one row per issued temporary motor policy
- policy_documents: generated certificate / statement of fact PDFs
- policy_events: append-only audit log, also used as side-effect markers
"""
import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, Text, DateTime, Date, Integer, BigInteger, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.database import Base


class PolicyStatus(str, enum.Enum):
    PAID = "PAID"


class PaymentProvider(str, enum.Enum):
    STRIPE = "STRIPE"
    BTCPAY = "BTCPAY"
    MANUAL = "MANUAL"
    TEST = "TEST"


class PaymentStatus(str, enum.Enum):
    PAID = "PAID"
    PENDING = "PENDING"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class DocumentKind(str, enum.Enum):
    CERTIFICATE = "CERTIFICATE"
    PROPOSAL = "PROPOSAL"


class StorageProvider(str, enum.Enum):
    R2 = "R2"
    LOCAL = "LOCAL"


class PolicyEventType(str, enum.Enum):
    POLICY_CREATED = "POLICY_CREATED"
    DOCS_GENERATED = "DOCS_GENERATED"
    EMAIL_SENT = "EMAIL_SENT"


def _uuid() -> str:
    return str(uuid.uuid4())


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


class Policy(Base):
    __tablename__ = "policies"
    __table_args__ = (
        UniqueConstraint("policy_number", name="uq_policies_policy_number"),
        # Idempotency key for the whole purchase pipeline
        UniqueConstraint("payment_provider", "payment_id", name="uq_policies_payment_ref"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    policy_number = Column(String(32), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=PolicyStatus.PAID.value)

    # Vehicle
    vrm = Column(String(16), nullable=False)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    year = Column(String(8), nullable=True)

    # Cover window
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    duration_ms = Column(BigInteger, nullable=False)
    total_amount_pence = Column(Integer, nullable=False)

    # Customer
    full_name = Column(String(255), nullable=False)
    dob = Column(Date, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    licence_type = Column(String(32), nullable=False)
    address = Column(Text, nullable=False)

    # Payment
    payment_provider = Column(String(20), nullable=False)
    payment_id = Column(String(255), nullable=False)
    payment_status = Column(String(20), nullable=False)
    currency = Column(String(10), nullable=False, default="GBP")
    stripe_payment_intent_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    documents = relationship("PolicyDocument", back_populates="policy", cascade="all, delete-orphan")
    events = relationship("PolicyEvent", back_populates="policy", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "policyNumber": self.policy_number,
            "status": self.status,
            "vrm": self.vrm,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "startAt": _iso(self.start_at),
            "endAt": _iso(self.end_at),
            "durationMs": int(self.duration_ms or 0),
            "totalAmountPence": self.total_amount_pence,
            "fullName": self.full_name,
            "dob": self.dob.isoformat() if self.dob else None,
            "email": self.email,
            "licenceType": self.licence_type,
            "address": self.address,
            "paymentProvider": self.payment_provider,
            "paymentId": self.payment_id,
            "paymentStatus": self.payment_status,
            "currency": self.currency,
            "stripePaymentIntentId": self.stripe_payment_intent_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class PolicyDocument(Base):
    __tablename__ = "policy_documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    policy_id = Column(String(36), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    filename = Column(String(255), nullable=False)
    storage_provider = Column(String(20), nullable=False, default=StorageProvider.R2.value)
    storage_key = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    policy = relationship("Policy", back_populates="documents")

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "filename": self.filename,
            "storageProvider": self.storage_provider,
            "storageKey": self.storage_key,
            "url": self.url,
            "createdAt": _iso(self.created_at),
        }


class PolicyEvent(Base):
    __tablename__ = "policy_events"
    __table_args__ = (
        Index("ix_policy_events_policy_type", "policy_id", "type"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    policy_id = Column(String(36), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    policy = relationship("Policy", back_populates="events")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data or {},
            "createdAt": _iso(self.created_at),
        }
