# hims_billing/services/voucher_engine.py
"""
Double-entry voucher posting.

Every voucher is posted in two committed steps:
  1. header (voucher_logs) with status Pending and a fresh voucher number
  2. entries + balance updates + status Posted, one transaction

A failure in step 2 leaves a Failed (or, at worst, Pending) header behind
and raises PartialPostError; sweep_incomplete_vouchers() cleans up Pending
headers that were never finished.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hims_billing.core.config import AccountConventions, settings
from hims_billing.models.accounting import (Account, AccountBalance,
                                            VoucherEntry, VoucherLog,
                                            VoucherStatus, VoucherType)
from hims_billing.schemas.accounting import (ContraVoucherIn, JournalLineIn,
                                             PaymentVoucherIn,
                                             ReceiptVoucherIn, VoucherPostOut)
from hims_billing.services.billing_errors import (BalanceMismatchError,
                                                  NotFoundError,
                                                  PartialPostError,
                                                  VoucherValidationError)
from hims_billing.services.billing_math import D, D0, money2, within_tolerance
from hims_billing.services.voucher_numbers import generate_voucher_number
from hims_billing.utils.timezone import now_local

logger = logging.getLogger(__name__)

LineLike = Union[JournalLineIn, dict]


# -------------------------
# accounts / balances
# -------------------------
def _require_accounts(db: Session, account_ids: Iterable[int]) -> None:
    wanted = {int(x) for x in account_ids}
    found = {
        r[0]
        for r in db.query(Account.id).filter(Account.id.in_(wanted)).all()
    }
    missing = sorted(wanted - found)
    if missing:
        raise NotFoundError(f"Account(s) not found: {missing}")


def ensure_account_conventions(
        db: Session,
        conventions: Optional[AccountConventions] = None
) -> AccountConventions:
    """Resolve the Cash / Bank / Receivables ids and check they exist."""
    conventions = conventions or settings.account_conventions()
    _require_accounts(db, conventions.required_ids())
    return conventions


def update_account_balance(db: Session, account_id: int, debit_amount,
                           credit_amount) -> Decimal:
    """
    balance += debit - credit on the locked balance row (created at 0 on first
    touch). Flushes only; runs inside the caller's posting transaction.
    """
    row = (db.query(AccountBalance).filter(
        AccountBalance.account_id == account_id).with_for_update().first())
    if row is None:
        row = AccountBalance(account_id=account_id, balance_amount=D0)
        db.add(row)
        db.flush()

    row.balance_amount = money2(
        D(row.balance_amount) + D(debit_amount) - D(credit_amount))
    db.flush()
    return row.balance_amount


# -------------------------
# validation
# -------------------------
def _parse_lines(entries: Sequence[LineLike]) -> List[JournalLineIn]:
    lines = [JournalLineIn.model_validate(e) for e in entries or []]
    if len(lines) < 2:
        raise VoucherValidationError("A voucher needs at least two entries")
    return lines


def _check_balanced(lines: Sequence[JournalLineIn]) -> Tuple[Decimal, Decimal]:
    total_debit = money2(sum((D(x.debit) for x in lines), D0))
    total_credit = money2(sum((D(x.credit) for x in lines), D0))
    if not within_tolerance(total_debit, total_credit,
                            settings.BALANCE_TOLERANCE):
        raise BalanceMismatchError(total_debit, total_credit)
    return total_debit, total_credit


# -------------------------
# posting
# -------------------------
def _insert_pending_header(
    db: Session,
    *,
    voucher_type: VoucherType,
    total_amount: Decimal,
    narration: str,
    voucher_date: date,
    location_id: int,
    batch_identifier: str,
    patient_id: Optional[str],
    now: datetime,
) -> VoucherLog:
    attempts = max(1, int(settings.VOUCHER_NUMBER_RETRIES))
    for attempt in range(1, attempts + 1):
        number = None
        try:
            number = generate_voucher_number(db,
                                             voucher_type,
                                             location_id,
                                             now=now)
            header = VoucherLog(
                voucher_number=number,
                type=voucher_type.value,
                total_amount=total_amount,
                narration=narration,
                voucher_date=voucher_date,
                location_id=location_id,
                batch_identifier=batch_identifier,
                status=VoucherStatus.PENDING.value,
                patient_id=patient_id,
                created_at=now,
            )
            db.add(header)
            db.commit()
            return header
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Voucher number %s already taken (attempt %s/%s)",
                number,
                attempt,
                attempts,
            )
            if attempt == attempts:
                raise
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to write %s voucher header",
                             voucher_type.value)
            raise


def _mark_failed(db: Session, header_id: int, voucher_number: str) -> None:
    try:
        db.query(VoucherLog).filter(VoucherLog.id == header_id).update(
            {VoucherLog.status: VoucherStatus.FAILED.value},
            synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Could not mark voucher %s failed; left Pending for the sweep",
            voucher_number)


def _post_voucher(
    db: Session,
    *,
    voucher_type: VoucherType,
    lines: Sequence[JournalLineIn],
    narration: str = "",
    voucher_date: Optional[date] = None,
    location_id: Optional[int] = None,
    patient_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> VoucherPostOut:
    # all validation happens before the first write
    total_debit, _ = _check_balanced(lines)
    _require_accounts(db, [x.account_id for x in lines])

    now = now or now_local()
    voucher_date = voucher_date or now.date()
    if location_id is None:
        location_id = settings.DEFAULT_LOCATION_ID
    batch_identifier = uuid.uuid4().hex

    header = _insert_pending_header(
        db,
        voucher_type=voucher_type,
        total_amount=total_debit,
        narration=narration or "",
        voucher_date=voucher_date,
        location_id=location_id,
        batch_identifier=batch_identifier,
        patient_id=patient_id,
        now=now,
    )
    header_id, voucher_number = header.id, header.voucher_number

    try:
        for line in lines:
            db.add(
                VoucherEntry(
                    voucher_log_id=header_id,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    narration=line.narration or narration or "",
                    voucher_date=voucher_date,
                    batch_identifier=batch_identifier,
                    location_id=location_id,
                    created_at=now,
                ))
            update_account_balance(db, line.account_id, line.debit or D0,
                                   line.credit or D0)
        header.status = VoucherStatus.POSTED.value
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Posting %s %s failed after its header was written",
                         voucher_type.value, voucher_number)
        _mark_failed(db, header_id, voucher_number)
        raise PartialPostError(
            f"Voucher {voucher_number} was not posted: {e}",
            voucher_number=voucher_number,
            batch_identifier=batch_identifier,
        ) from e

    logger.info("Posted %s voucher %s (%s) for %s", voucher_type.value,
                voucher_number, batch_identifier, total_debit)
    return VoucherPostOut(
        voucher_log_id=header_id,
        voucher_number=voucher_number,
        batch_identifier=batch_identifier,
    )


def create_journal_entry(
    db: Session,
    entries: Sequence[LineLike],
    *,
    narration: str = "",
    voucher_date: Optional[date] = None,
    location_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> VoucherPostOut:
    """
    N-leg journal voucher. Debits and credits must agree within 0.01
    (BalanceMismatchError, nothing written); every account must exist.
    """
    lines = _parse_lines(entries)
    return _post_voucher(
        db,
        voucher_type=VoucherType.JOURNAL,
        lines=lines,
        narration=narration,
        voucher_date=voucher_date,
        location_id=location_id,
        now=now,
    )


def create_receipt_voucher(
    db: Session,
    data: Union[ReceiptVoucherIn, dict],
    *,
    conventions: Optional[AccountConventions] = None,
    now: Optional[datetime] = None,
) -> VoucherPostOut:
    """Money received from a patient: Dr Cash/Bank, Cr Patient Receivables."""
    data = ReceiptVoucherIn.model_validate(data)
    conv = ensure_account_conventions(db, conventions)
    narration = f"Receipt from Patient {data.patient_id} - {data.narration}"
    lines = [
        JournalLineIn(account_id=conv.cash_or_bank(data.payment_mode),
                      debit=data.amount,
                      narration=narration),
        JournalLineIn(account_id=conv.receivables_account_id,
                      credit=data.amount,
                      narration=narration),
    ]
    return _post_voucher(
        db,
        voucher_type=VoucherType.RECEIPT,
        lines=lines,
        narration=data.narration,
        voucher_date=data.voucher_date,
        location_id=data.location_id,
        patient_id=data.patient_id,
        now=now,
    )


def create_payment_voucher(
    db: Session,
    data: Union[PaymentVoucherIn, dict],
    *,
    conventions: Optional[AccountConventions] = None,
    now: Optional[datetime] = None,
) -> VoucherPostOut:
    """Money paid out: Dr the given expense / supplier account, Cr Cash/Bank."""
    data = PaymentVoucherIn.model_validate(data)
    conv = ensure_account_conventions(db, conventions)
    lines = [
        JournalLineIn(account_id=data.account_id, debit=data.amount),
        JournalLineIn(account_id=conv.cash_or_bank(data.payment_mode),
                      credit=data.amount),
    ]
    return _post_voucher(
        db,
        voucher_type=VoucherType.PAYMENT,
        lines=lines,
        narration=data.narration,
        voucher_date=data.voucher_date,
        location_id=data.location_id,
        now=now,
    )


def create_contra_voucher(
    db: Session,
    data: Union[ContraVoucherIn, dict],
    *,
    now: Optional[datetime] = None,
) -> VoucherPostOut:
    """Fund transfer between cash / bank accounts: Dr to_account, Cr from_account."""
    data = ContraVoucherIn.model_validate(data)
    if data.from_account_id == data.to_account_id:
        raise VoucherValidationError(
            "Contra needs two different accounts")
    lines = [
        JournalLineIn(account_id=data.to_account_id, debit=data.amount),
        JournalLineIn(account_id=data.from_account_id, credit=data.amount),
    ]
    return _post_voucher(
        db,
        voucher_type=VoucherType.CONTRA,
        lines=lines,
        narration=data.narration,
        voucher_date=data.voucher_date,
        location_id=data.location_id,
        now=now,
    )


# -------------------------
# reversal
# -------------------------
def delete_journal_entry(db: Session,
                         batch_identifier: str,
                         *,
                         now: Optional[datetime] = None) -> dict:
    """
    Reverse every live entry of the batch (debit and credit swapped) and
    soft-delete the entries and their header, in one transaction.
    """
    entries = (db.query(VoucherEntry).filter(
        VoucherEntry.batch_identifier == batch_identifier,
        VoucherEntry.is_deleted.is_(False),
    ).order_by(VoucherEntry.id.asc()).all())
    if not entries:
        raise NotFoundError(
            f"No entries found for batch identifier {batch_identifier}")

    now = now or now_local()
    try:
        for e in entries:
            update_account_balance(db, e.account_id, e.credit or D0, e.debit
                                   or D0)
            e.is_deleted = True
            e.deleted_at = now

        for header in (db.query(VoucherLog).filter(
                VoucherLog.batch_identifier == batch_identifier,
                VoucherLog.is_deleted.is_(False),
        ).all()):
            header.is_deleted = True
            header.deleted_at = now
            header.status = VoucherStatus.REVERSED.value
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to reverse voucher batch %s",
                         batch_identifier)
        raise

    logger.info("Reversed voucher batch %s (%s entries)", batch_identifier,
                len(entries))
    return {"success": True, "batch_identifier": batch_identifier}


def delete_voucher(db: Session,
                   voucher_log_id: int,
                   *,
                   now: Optional[datetime] = None) -> dict:
    header = (db.query(VoucherLog).filter(
        VoucherLog.id == voucher_log_id,
        VoucherLog.is_deleted.is_(False),
    ).first())
    if not header:
        raise NotFoundError(f"Voucher {voucher_log_id} not found")
    return delete_journal_entry(db, header.batch_identifier, now=now)


# receipts and payments are reversed exactly like journals
delete_payment_voucher = delete_voucher
delete_receipt_voucher = delete_voucher


# -------------------------
# housekeeping
# -------------------------
def sweep_incomplete_vouchers(db: Session,
                              *,
                              older_than_minutes: Optional[int] = None,
                              now: Optional[datetime] = None) -> List[str]:
    """
    Pending headers older than the threshold never got their entries:
    mark them Failed and soft-delete them. Returns the swept voucher numbers.
    """
    now = now or now_local()
    minutes = (settings.PENDING_VOUCHER_MAX_AGE_MINUTES
               if older_than_minutes is None else older_than_minutes)
    cutoff = now - timedelta(minutes=minutes)

    try:
        stale = (db.query(VoucherLog).filter(
            VoucherLog.status == VoucherStatus.PENDING.value,
            VoucherLog.is_deleted.is_(False),
            VoucherLog.created_at < cutoff,
        ).order_by(VoucherLog.id.asc()).all())
        swept = []
        for header in stale:
            header.status = VoucherStatus.FAILED.value
            header.is_deleted = True
            header.deleted_at = now
            swept.append(header.voucher_number)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Pending voucher sweep failed")
        raise

    if swept:
        logger.warning("Swept %s incomplete voucher(s): %s", len(swept),
                       ", ".join(swept))
    return swept
