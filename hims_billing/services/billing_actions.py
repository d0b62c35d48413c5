# hims_billing/services/billing_actions.py
"""
Page-facing billing actions: advances, final bill, receipts, summaries.

These compose the bill breakdown with payment state and post the matching
receipt vouchers. Each action returns the ok()/err() envelope instead of
raising, so the billing screens only check `ok`.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hims_billing.core.config import AccountConventions, settings
from hims_billing.models.billing import (Billing, FinalBilling,
                                         NumberResetPeriod, PaymentCategory)
from hims_billing.models.ipd import Patient
from hims_billing.schemas.accounting import ReceiptVoucherIn
from hims_billing.schemas.billing import (AdvancePaymentIn, BillingSummaryOut,
                                          FinalBillIn, FinalBillingOut,
                                          ReceiptOut)
from hims_billing.services.bill_breakdown import calculate_total_bill
from hims_billing.services.billing_errors import BillingError, NotFoundError
from hims_billing.services.billing_math import D, D0, money2, sum_money
from hims_billing.services.number_series import next_number
from hims_billing.services.voucher_engine import (create_receipt_voucher,
                                                  delete_voucher)
from hims_billing.utils.resp import err, ok
from hims_billing.utils.timezone import now_local

logger = logging.getLogger(__name__)

BILL_NUMBER_DIGITS = 4


# -------------------------
# helpers
# -------------------------
def _location_for(patient: Patient, location_id: Optional[int]) -> int:
    if location_id is not None:
        return int(location_id)
    if patient.location_id is not None:
        return int(patient.location_id)
    return settings.DEFAULT_LOCATION_ID


def _recompute_snapshot(fb: FinalBilling) -> None:
    # final = total - advance - discount; balance = final - paid
    fb.final_amount = money2(
        D(fb.total_bill_amount) - D(fb.advance_amount) -
        D(fb.discount_amount))
    fb.balance_amount = money2(D(fb.final_amount) - D(fb.paid_amount))


def _snapshot_for(db: Session, patient_id: int) -> FinalBilling:
    fb = (db.query(FinalBilling).filter(
        FinalBilling.patient_id == patient_id).with_for_update().first())
    if fb is None:
        fb = FinalBilling(
            patient_id=patient_id,
            total_bill_amount=D0,
            advance_amount=D0,
            discount_amount=D0,
            final_amount=D0,
            paid_amount=D0,
            balance_amount=D0,
        )
        db.add(fb)
    return fb


def _apply_advance(db: Session, patient_id: int, delta: Decimal) -> None:
    fb = _snapshot_for(db, patient_id)
    fb.advance_amount = money2(D(fb.advance_amount) + D(delta))
    _recompute_snapshot(fb)


def _last_bill_sequence(db: Session, prefix: str) -> int:
    row = (db.query(Billing.bill_number).filter(
        Billing.payment_category == PaymentCategory.FINAL_BILL.value,
        Billing.bill_number.like(f"{prefix}%"),
    ).order_by(Billing.bill_number.desc()).first())
    if not row:
        return 0
    tail = (row[0] or "")[len(prefix):len(prefix) + BILL_NUMBER_DIGITS]
    return int(tail) if tail.isdigit() else 0


# -------------------------
# numbers / reads
# -------------------------
def generate_bill_number(db: Session, *, now: Optional[datetime] = None) -> str:
    """YYYYMM + 4-digit sequence, restarting every month. Flushed only."""
    now = now or now_local()
    prefix = f"{now:%Y%m}"
    return next_number(
        db,
        doc_type="BILL",
        scope_id=0,
        reset_period=NumberResetPeriod.MONTH,
        prefix=prefix,
        padding=BILL_NUMBER_DIGITS,
        now=now,
        seed=lambda: _last_bill_sequence(db, prefix),
    )


def get_advance_payments(db: Session, patient_id: int) -> Decimal:
    total = (db.query(func.coalesce(func.sum(Billing.total_amount),
                                    0)).filter(
        Billing.patient_id == patient_id,
        Billing.payment_category == PaymentCategory.ADVANCE.value,
        Billing.is_deleted.is_(False),
    ).scalar())
    return money2(total)


def get_final_bill(db: Session, patient_id: int) -> Optional[FinalBillingOut]:
    fb = (db.query(FinalBilling).filter(
        FinalBilling.patient_id == patient_id).first())
    return FinalBillingOut.model_validate(fb) if fb else None


def get_payment_history(db: Session, patient_id: int) -> List[Billing]:
    return (db.query(Billing).filter(
        Billing.patient_id == patient_id,
        Billing.is_deleted.is_(False),
    ).order_by(Billing.created_at.desc(), Billing.id.desc()).all())


def get_billing_summary(db: Session,
                        *,
                        today: Optional[date] = None) -> BillingSummaryOut:
    today = today or now_local().date()
    live = db.query(Billing).filter(Billing.is_deleted.is_(False))

    today_rows = live.filter(Billing.billing_date == today).with_entities(
        Billing.total_amount).all()
    all_rows = live.with_entities(Billing.total_amount).all()
    pending = (db.query(FinalBilling.balance_amount).filter(
        FinalBilling.balance_amount > 0).all())

    return BillingSummaryOut(
        today_bills=len(today_rows),
        today_revenue=sum_money(r[0] for r in today_rows),
        pending_bills=len(pending),
        pending_amount=sum_money(r[0] for r in pending),
        total_bills=len(all_rows),
        total_revenue=sum_money(r[0] for r in all_rows),
    )


def generate_receipt(db: Session, billing_id: int) -> Optional[ReceiptOut]:
    billing = db.get(Billing, billing_id)
    if not billing:
        return None

    breakdown = None
    if billing.payment_category == PaymentCategory.FINAL_BILL.value:
        breakdown = calculate_total_bill(db, billing.patient_id)

    patient = billing.patient
    return ReceiptOut(
        id=billing.id,
        bill_number=billing.bill_number or f"ADV-{billing.id}",
        patient_name=patient.full_name if patient else "",
        total_amount=money2(billing.total_amount),
        paid_amount=money2(billing.paid_amount),
        payment_mode=billing.payment_mode or "Cash",
        billing_date=billing.billing_date,
        hospital_name=settings.HOSPITAL_NAME,
        hospital_address=settings.HOSPITAL_ADDRESS,
        charges_breakdown=breakdown,
    )


# -------------------------
# advances
# -------------------------
def save_advance_payment(
    db: Session,
    data: Union[AdvancePaymentIn, dict],
    *,
    conventions: Optional[AccountConventions] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Advance received: receipt voucher (Cash/Bank -> Receivables), an
    Advance billing row linked to it and the snapshot advance raised.
    The voucher is reversed again if the billing row cannot be written.
    """
    try:
        data = AdvancePaymentIn.model_validate(data)
    except ValidationError as e:
        return err("Invalid advance payment", code="VALIDATION",
                   details=e.errors())

    now = now or now_local()
    patient = db.get(Patient, data.patient_id)
    if not patient:
        return err(f"Patient {data.patient_id} not found", code="NOT_FOUND")

    try:
        voucher = create_receipt_voucher(
            db,
            ReceiptVoucherIn(
                patient_id=str(patient.id),
                amount=data.amount,
                payment_mode=data.payment_mode,
                narration=f"Advance payment {data.remarks or ''}".strip(),
                voucher_date=now.date(),
                location_id=_location_for(patient, data.location_id),
            ),
            conventions=conventions,
            now=now,
        )
    except (BillingError, SQLAlchemyError) as e:
        logger.exception("Advance receipt voucher failed for patient %s",
                         patient.id)
        return err(str(e), code="VOUCHER_POST_FAILED")

    try:
        billing = Billing(
            patient_id=patient.id,
            total_amount=money2(data.amount),
            paid_amount=money2(data.amount),
            payment_category=PaymentCategory.ADVANCE.value,
            payment_mode=data.payment_mode,
            bank_name=data.bank_name,
            cheque_number=data.cheque_number,
            transaction_id=data.transaction_id,
            remarks=data.remarks,
            billing_date=now.date(),
            voucher_log_id=voucher.voucher_log_id,
            created_at=now,
        )
        db.add(billing)
        _apply_advance(db, patient.id, money2(data.amount))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Saving advance for patient %s failed", patient.id)
        try:
            delete_voucher(db, voucher.voucher_log_id, now=now)
        except (BillingError, SQLAlchemyError) as rev:
            logger.exception(
                "Receipt voucher %s is orphaned: advance row not saved and "
                "reversal failed", voucher.voucher_number)
            return err(
                f"Advance not saved and voucher {voucher.voucher_number} "
                f"could not be reversed: {rev}",
                code="VOUCHER_REVERSAL_FAILED",
                data={
                    "voucher_log_id": voucher.voucher_log_id,
                    "voucher_number": voucher.voucher_number,
                },
            )
        return err(str(e), code="DB_ERROR")

    logger.info("Advance %s saved for patient %s (%s)", data.amount,
                patient.id, voucher.voucher_number)
    return ok({
        "billing_id": billing.id,
        "voucher_log_id": voucher.voucher_log_id,
        "voucher_number": voucher.voucher_number,
    })


def delete_advance_payment(db: Session,
                           billing_id: int,
                           *,
                           now: Optional[datetime] = None) -> dict:
    now = now or now_local()
    billing = (db.query(Billing).filter(
        Billing.id == billing_id,
        Billing.payment_category == PaymentCategory.ADVANCE.value,
        Billing.is_deleted.is_(False),
    ).first())
    if not billing:
        return err(f"Advance payment {billing_id} not found",
                   code="NOT_FOUND")

    if billing.voucher_log_id:
        try:
            delete_voucher(db, billing.voucher_log_id, now=now)
        except NotFoundError:
            logger.warning("Voucher %s of advance %s was already reversed",
                           billing.voucher_log_id, billing_id)
        except (BillingError, SQLAlchemyError) as e:
            return err(str(e), code="VOUCHER_REVERSAL_FAILED")

    try:
        billing.is_deleted = True
        billing.deleted_at = now
        _apply_advance(db, billing.patient_id, -D(billing.total_amount))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Deleting advance %s failed", billing_id)
        return err(str(e), code="DB_ERROR")

    logger.info("Advance %s deleted for patient %s", billing_id,
                billing.patient_id)
    return ok({"billing_id": billing_id})


# -------------------------
# final bill
# -------------------------
def save_final_bill(
    db: Session,
    patient_id: int,
    data: Union[FinalBillIn, dict],
    *,
    conventions: Optional[AccountConventions] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Final bill: bill number, Finalbill row (+ one Payment row per mode when
    split) and the final_billings snapshot, committed together. Receipt
    vouchers for the payments are posted afterwards; a voucher failure
    there is reported with the already saved bill number.
    """
    try:
        data = FinalBillIn.model_validate(data)
    except ValidationError as e:
        return err("Invalid final bill", code="VALIDATION",
                   details=e.errors())

    now = now or now_local()
    patient = db.get(Patient, patient_id)
    if not patient:
        return err(f"Patient {patient_id} not found", code="NOT_FOUND")

    try:
        breakdown = calculate_total_bill(db, patient_id, now=now)
        advance = get_advance_payments(db, patient_id)
        bill_number = generate_bill_number(db, now=now)
        total_paid = sum_money(p.amount for p in data.payments)

        main = Billing(
            patient_id=patient_id,
            bill_number=bill_number,
            total_amount=money2(data.total_amount),
            paid_amount=total_paid,
            payment_category=PaymentCategory.FINAL_BILL.value,
            payment_mode=", ".join(p.mode for p in data.payments) or None,
            bank_name=next((p.bank_name for p in data.payments if p.bank_name),
                           None),
            cheque_number=next(
                (p.cheque_number for p in data.payments if p.cheque_number),
                None),
            transaction_id=next(
                (p.transaction_id for p in data.payments if p.transaction_id),
                None),
            remarks=data.remarks,
            billing_date=now.date(),
            created_at=now,
        )
        db.add(main)
        db.flush()

        # (billing row, payment) pairs that get a receipt voucher
        receipt_rows = []
        if len(data.payments) > 1:
            for p in data.payments:
                child = Billing(
                    patient_id=patient_id,
                    bill_number=f"{bill_number}-{p.mode}",
                    total_amount=money2(p.amount),
                    paid_amount=money2(p.amount),
                    payment_category=PaymentCategory.PAYMENT.value,
                    payment_mode=p.mode,
                    bank_name=p.bank_name,
                    cheque_number=p.cheque_number,
                    transaction_id=p.transaction_id,
                    billing_date=now.date(),
                    parent_bill_id=main.id,
                    created_at=now,
                )
                db.add(child)
                receipt_rows.append((child, p))
        elif data.payments:
            receipt_rows.append((main, data.payments[0]))

        fb = _snapshot_for(db, patient_id)
        fb.bill_number = bill_number
        fb.bill_date = now.date()
        fb.total_bill_amount = money2(data.total_amount)
        fb.advance_amount = advance
        fb.discount_amount = money2(data.discount)
        fb.paid_amount = total_paid
        for field, value in breakdown.categories().items():
            setattr(fb, field, value)
        _recompute_snapshot(fb)

        db.commit()
    except NotFoundError as e:
        db.rollback()
        return err(str(e), code="NOT_FOUND")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Saving final bill for patient %s failed",
                         patient_id)
        return err(str(e), code="DB_ERROR")

    result = {
        "bill_number": bill_number,
        "billing_id": main.id,
        "final_amount": money2(fb.final_amount),
        "balance_amount": money2(fb.balance_amount),
        "voucher_numbers": [],
    }
    logger.info("Final bill %s saved for patient %s", bill_number, patient_id)

    location_id = _location_for(patient, data.location_id)
    try:
        for row, p in receipt_rows:
            if D(p.amount) <= 0:
                continue
            voucher = create_receipt_voucher(
                db,
                ReceiptVoucherIn(
                    patient_id=str(patient_id),
                    amount=p.amount,
                    payment_mode=p.mode,
                    narration=f"Final bill {bill_number}",
                    voucher_date=now.date(),
                    location_id=location_id,
                ),
                conventions=conventions,
                now=now,
            )
            row.voucher_log_id = voucher.voucher_log_id
            db.commit()
            result["voucher_numbers"].append(voucher.voucher_number)
    except (BillingError, SQLAlchemyError) as e:
        db.rollback()
        logger.exception(
            "Final bill %s saved but its receipt vouchers were not all posted",
            bill_number)
        return err(
            f"Final bill {bill_number} saved; receipt voucher failed: {e}",
            code="VOUCHER_POST_FAILED",
            data=result,
        )

    return ok(result)
