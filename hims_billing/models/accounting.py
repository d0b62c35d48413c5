# hims_billing/models/accounting.py
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
    Index,
    UniqueConstraint,
    ForeignKey,
    Text,
)
from sqlalchemy.orm import relationship

from hims_billing.db.base import Base


class VoucherType(str, enum.Enum):
    JOURNAL = "Journal"
    RECEIPT = "Receipt"
    PAYMENT = "Payment"
    CONTRA = "Contra"


class VoucherStatus(str, enum.Enum):
    PENDING = "Pending"  # header written, entries/balances not yet applied
    POSTED = "Posted"
    REVERSED = "Reversed"  # soft-deleted with balances reversed
    FAILED = "Failed"  # posting aborted after the header was written


class Account(Base):
    """
    Chart of accounts. The running balance lives in AccountBalance
    (a cache over voucher_entries, see ledger_reports.reconcile_account_balances).
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    code = Column(String(30), nullable=True, unique=True)
    name = Column(String(150), nullable=False)
    # ASSET | LIABILITY | EQUITY | INCOME | EXPENSE
    account_type = Column(String(20), nullable=False, default="ASSET")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    balance_row = relationship("AccountBalance",
                               uselist=False,
                               back_populates="account")

    @property
    def balance_amount(self) -> Decimal:
        if self.balance_row is None or self.balance_row.balance_amount is None:
            return Decimal("0.00")
        return Decimal(str(self.balance_row.balance_amount))


class AccountBalance(Base):
    __tablename__ = "account_balances"

    account_id = Column(Integer, ForeignKey("accounts.id"), primary_key=True)
    balance_amount = Column(Numeric(14, 2),
                            nullable=False,
                            default=Decimal("0.00"))
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="balance_row")


class VoucherLog(Base):
    """One posted transaction header; soft-deleted together with its entries."""
    __tablename__ = "voucher_logs"
    __table_args__ = (
        # sequences restart per location, so numbers repeat across locations
        UniqueConstraint("voucher_number",
                         "location_id",
                         name="uq_voucher_logs_number_location"),
        Index("ix_voucher_logs_type_loc_created", "type", "location_id",
              "created_at"),
        Index("ix_voucher_logs_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    voucher_number = Column(String(30), nullable=False)
    type = Column(String(16), nullable=False)  # VoucherType value
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    narration = Column(Text, default="")
    voucher_date = Column(Date, nullable=False)
    location_id = Column(Integer, nullable=False, index=True)
    batch_identifier = Column(String(40), nullable=False, index=True)
    status = Column(String(16),
                    nullable=False,
                    default=VoucherStatus.PENDING.value)

    # receipts from patients carry the patient reference (account statements)
    patient_id = Column(String(64), nullable=True, index=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    entries = relationship("VoucherEntry", back_populates="voucher_log")


class VoucherEntry(Base):
    """One debit OR credit leg of a voucher."""
    __tablename__ = "voucher_entries"
    __table_args__ = (
        Index("ix_voucher_entries_account_date", "account_id",
              "voucher_date"),
        Index("ix_voucher_entries_batch_deleted", "batch_identifier",
              "is_deleted"),
    )

    id = Column(Integer, primary_key=True)
    voucher_log_id = Column(Integer,
                            ForeignKey("voucher_logs.id"),
                            nullable=False,
                            index=True)
    account_id = Column(Integer,
                        ForeignKey("accounts.id"),
                        nullable=False,
                        index=True)
    debit = Column(Numeric(14, 2), nullable=True)
    credit = Column(Numeric(14, 2), nullable=True)
    narration = Column(Text, default="")
    voucher_date = Column(Date, nullable=False)
    batch_identifier = Column(String(40), nullable=False)
    location_id = Column(Integer, nullable=False)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    voucher_log = relationship("VoucherLog", back_populates="entries")
    account = relationship("Account")
