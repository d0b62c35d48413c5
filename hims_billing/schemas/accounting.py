# hims_billing/schemas/accounting.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hims_billing.core.config import settings
from hims_billing.services.billing_math import money2
from hims_billing.utils.timezone import today_local


class JournalLineIn(BaseModel):
    account_id: int
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    narration: Optional[str] = None

    @field_validator("debit", "credit")
    @classmethod
    def zero_as_missing(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return None
        if v < 0:
            raise ValueError("amounts cannot be negative")
        # legs are stored to the paisa, so balance is checked on stored values
        v = money2(v)
        return v if v > 0 else None

    @model_validator(mode="after")
    def one_side_only(self):
        # exactly one of debit / credit per leg
        if (self.debit is None) == (self.credit is None):
            raise ValueError(
                "each entry needs exactly one of debit or credit")
        return self


class ReceiptVoucherIn(BaseModel):
    patient_id: str
    amount: Decimal = Field(gt=0)
    payment_mode: str = "Cash"
    narration: str = ""
    voucher_date: date = Field(default_factory=today_local)
    location_id: int = settings.DEFAULT_LOCATION_ID

    @field_validator("patient_id", mode="before")
    @classmethod
    def patient_as_str(cls, v):
        return str(v) if v is not None else v


class PaymentVoucherIn(BaseModel):
    account_id: int  # expense / supplier account being debited
    amount: Decimal = Field(gt=0)
    payment_mode: str = "Cash"
    narration: str = ""
    voucher_date: date = Field(default_factory=today_local)
    location_id: int = settings.DEFAULT_LOCATION_ID


class ContraVoucherIn(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(gt=0)
    narration: str = ""
    voucher_date: date = Field(default_factory=today_local)
    location_id: int = settings.DEFAULT_LOCATION_ID


class VoucherPostOut(BaseModel):
    success: bool = True
    voucher_log_id: int
    voucher_number: str
    batch_identifier: str


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: Optional[str] = None
    name: str
    account_type: str
    balance_amount: Decimal = Decimal("0.00")


class TrialBalanceRow(BaseModel):
    account_id: int
    account_name: str = ""
    account_type: str = ""
    total_debit: Decimal = Decimal("0.00")
    total_credit: Decimal = Decimal("0.00")

    @property
    def net(self) -> Decimal:
        return self.total_debit - self.total_credit


class TrialBalance(BaseModel):
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    location_id: Optional[int] = None
    rows: List[TrialBalanceRow] = []
    total_debit: Decimal = Decimal("0.00")
    total_credit: Decimal = Decimal("0.00")
    is_balanced: bool = True


class LedgerLine(BaseModel):
    entry_id: int
    voucher_log_id: int
    voucher_number: str
    voucher_type: str
    voucher_date: date
    account_id: int
    narration: Optional[str] = None
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    running_balance: Decimal = Decimal("0.00")
    batch_identifier: str
    location_id: int


class BalanceDrift(BaseModel):
    account_id: int
    cached_balance: Decimal
    ledger_balance: Decimal
    repaired: bool = False

    @property
    def difference(self) -> Decimal:
        return self.cached_balance - self.ledger_balance


class PatientPaymentLine(BaseModel):
    voucher_number: str
    voucher_date: date
    narration: Optional[str] = None
    amount: Decimal


class PatientAccountStatement(BaseModel):
    patient_id: str
    billings: List[dict] = []
    payments: List[PatientPaymentLine] = []
    total_billed: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
    outstanding: Decimal = Decimal("0.00")
