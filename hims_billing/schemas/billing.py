# hims_billing/schemas/billing.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

PayModeLiteral = Literal["Cash", "Cheque", "NEFT", "Card", "UPI",
                         "Bank Deposit"]

ZERO = Decimal("0.00")


class BillBreakdown(BaseModel):
    """
    Live charge roll-up for one patient. Recomputed on every call;
    total_charges is always the sum of the eleven categories.
    """
    ward_charges: Decimal = ZERO
    nursing_charges: Decimal = ZERO
    doctor_charges: Decimal = ZERO
    registration_charges: Decimal = ZERO
    consultant_charges: Decimal = ZERO
    lab_charges: Decimal = ZERO
    radiology_charges: Decimal = ZERO
    pharmacy_charges: Decimal = ZERO
    surgery_charges: Decimal = ZERO
    anesthesia_charges: Decimal = ZERO
    other_charges: Decimal = ZERO
    total_charges: Decimal = ZERO

    CATEGORY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "ward_charges",
        "nursing_charges",
        "doctor_charges",
        "registration_charges",
        "consultant_charges",
        "lab_charges",
        "radiology_charges",
        "pharmacy_charges",
        "surgery_charges",
        "anesthesia_charges",
        "other_charges",
    )

    def categories(self) -> dict:
        return {f: getattr(self, f) for f in self.CATEGORY_FIELDS}


class WardStayChargeOut(BaseModel):
    ward_stay_id: int
    ward_id: int
    ward_name: Optional[str] = None
    ward_type: Optional[str] = None
    rate_key: str
    in_date: datetime
    out_date: Optional[datetime] = None  # None = still admitted
    days: int
    daily_rate: Decimal
    amount: Decimal


class AdvancePaymentIn(BaseModel):
    patient_id: int
    amount: Decimal = Field(gt=0)
    payment_mode: PayModeLiteral = "Cash"
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None
    location_id: Optional[int] = None


class PaymentModeIn(BaseModel):
    mode: PayModeLiteral
    amount: Decimal = Field(ge=0)
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    transaction_id: Optional[str] = None


class FinalBillIn(BaseModel):
    total_amount: Decimal = Field(ge=0)
    discount: Decimal = Field(default=ZERO, ge=0)
    payments: List[PaymentModeIn] = []
    remarks: Optional[str] = None
    location_id: Optional[int] = None


class FinalBillingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_id: int
    bill_number: Optional[str] = None
    bill_date: Optional[date] = None
    total_bill_amount: Decimal = ZERO
    advance_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance_amount: Decimal = ZERO


class ReceiptOut(BaseModel):
    id: int
    bill_number: str
    patient_name: str
    total_amount: Decimal
    paid_amount: Decimal
    payment_mode: str
    billing_date: date
    hospital_name: str
    hospital_address: str
    charges_breakdown: Optional[BillBreakdown] = None


class BillingSummaryOut(BaseModel):
    today_bills: int = 0
    today_revenue: Decimal = ZERO
    pending_bills: int = 0
    pending_amount: Decimal = ZERO
    total_bills: int = 0
    total_revenue: Decimal = ZERO


class WardTransferIn(BaseModel):
    patient_id: int
    new_ward_id: int
    new_bed_id: int
    transfer_reason: str = ""
    transferred_by: Optional[int] = None


class DischargeIn(BaseModel):
    patient_id: int
    discharge_type: str = "Normal"
    discharge_date: Optional[datetime] = None
    discharged_by: Optional[int] = None
