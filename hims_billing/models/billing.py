# hims_billing/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
    Text,
)
from sqlalchemy.orm import relationship

from hims_billing.db.base import Base


class NumberResetPeriod(str, enum.Enum):
    NONE = "NONE"
    YEAR = "YEAR"
    MONTH = "MONTH"
    DAY = "DAY"


class PaymentCategory(str, enum.Enum):
    ADVANCE = "Advance"
    FINAL_BILL = "Finalbill"
    PAYMENT = "Payment"  # one row per mode when a final bill is split


class NumberSeries(Base):
    """
    Counter rows for document numbers (vouchers per type/location/day,
    bills per month). Locked with SELECT ... FOR UPDATE while incrementing.
    """
    __tablename__ = "number_series"
    __table_args__ = (UniqueConstraint("doc_type",
                                       "scope_id",
                                       "period_key",
                                       name="uq_number_series_scope"), )

    id = Column(Integer, primary_key=True)
    doc_type = Column(String(20), nullable=False)  # JV / RV / PV / CV / BILL
    scope_id = Column(Integer, nullable=False, default=0)  # location id
    period_key = Column(String(10), nullable=False, default="")
    reset_period = Column(String(10),
                          nullable=False,
                          default=NumberResetPeriod.NONE.value)
    prefix = Column(String(30), nullable=False, default="")
    padding = Column(Integer, nullable=False, default=3)
    next_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)


class Billing(Base):
    """Advance receipts, final bills and their split-payment children."""
    __tablename__ = "billings"
    __table_args__ = (Index("ix_billings_patient_category", "patient_id",
                            "payment_category", "is_deleted"), )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    bill_number = Column(String(40), nullable=True, index=True)

    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)

    payment_category = Column(String(16), nullable=False)
    payment_mode = Column(String(100), nullable=True)
    bank_name = Column(String(100), nullable=True)
    cheque_number = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)

    billing_date = Column(Date, nullable=False)
    parent_bill_id = Column(Integer, ForeignKey("billings.id"), nullable=True)

    # receipt voucher posted for the money on this row
    voucher_log_id = Column(Integer,
                            ForeignKey("voucher_logs.id"),
                            nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    patient = relationship("Patient")


class FinalBilling(Base):
    """
    Denormalized per-patient snapshot: bill breakdown + payment state.
    Upserted on every advance / final bill save; can drift from live charges.
    """
    __tablename__ = "final_billings"
    __table_args__ = (UniqueConstraint("patient_id",
                                       name="uq_final_billings_patient"), )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    bill_number = Column(String(40), nullable=True)
    bill_date = Column(Date, nullable=True)

    total_bill_amount = Column(Numeric(14, 2), default=Decimal("0.00"))
    advance_amount = Column(Numeric(14, 2), default=Decimal("0.00"))
    discount_amount = Column(Numeric(14, 2), default=Decimal("0.00"))
    final_amount = Column(Numeric(14, 2), default=Decimal("0.00"))
    paid_amount = Column(Numeric(14, 2), default=Decimal("0.00"))
    balance_amount = Column(Numeric(14, 2), default=Decimal("0.00"))

    # breakdown copy
    ward_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    nursing_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    doctor_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    registration_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    consultant_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    lab_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    radiology_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    pharmacy_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    surgery_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    anesthesia_charges = Column(Numeric(14, 2), default=Decimal("0.00"))
    other_charges = Column(Numeric(14, 2), default=Decimal("0.00"))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)
