# hims_billing/services/ledger_reports.py
"""
Read side of the books. Everything here is derived from voucher_entries;
the cached account_balances are only compared against, never trusted.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import false, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hims_billing.core.config import AccountConventions, settings
from hims_billing.models.accounting import (Account, AccountBalance,
                                            VoucherEntry, VoucherLog,
                                            VoucherType)
from hims_billing.models.billing import FinalBilling
from hims_billing.schemas.accounting import (AccountOut, BalanceDrift,
                                             LedgerLine,
                                             PatientAccountStatement,
                                             PatientPaymentLine,
                                             TrialBalance, TrialBalanceRow)
from hims_billing.services.billing_math import D, D0, money2, within_tolerance

logger = logging.getLogger(__name__)


def _live_entries(db: Session,
                  from_date: Optional[date] = None,
                  to_date: Optional[date] = None,
                  location_id: Optional[int] = None):
    q = db.query(VoucherEntry).filter(VoucherEntry.is_deleted.is_(False))
    if from_date is not None:
        q = q.filter(VoucherEntry.voucher_date >= from_date)
    if to_date is not None:
        q = q.filter(VoucherEntry.voucher_date <= to_date)
    if location_id is not None:
        q = q.filter(VoucherEntry.location_id == location_id)
    return q


# -------------------------
# accounts
# -------------------------
def get_account_balance(db: Session, account_id: int) -> Decimal:
    """Cached balance; 0 for an account that was never posted to."""
    value = (db.query(AccountBalance.balance_amount).filter(
        AccountBalance.account_id == account_id).scalar())
    return money2(value)


def get_chart_of_accounts(db: Session) -> List[AccountOut]:
    rows = (db.query(Account).filter(Account.is_active.is_(True)).order_by(
        Account.name.asc()).all())
    return [AccountOut.model_validate(a) for a in rows]


# -------------------------
# trial balance / ledger
# -------------------------
def get_trial_balance(db: Session,
                      from_date: Optional[date] = None,
                      to_date: Optional[date] = None,
                      location_id: Optional[int] = None) -> TrialBalance:
    """Per-account debit / credit totals over the live entries in range."""
    q = (_live_entries(db, from_date, to_date, location_id).with_entities(
        VoucherEntry.account_id,
        func.coalesce(func.sum(VoucherEntry.debit), 0),
        func.coalesce(func.sum(VoucherEntry.credit), 0),
    ).group_by(VoucherEntry.account_id).order_by(VoucherEntry.account_id))
    sums = q.all()

    accounts: Dict[int, Account] = {
        a.id: a
        for a in db.query(Account).filter(
            Account.id.in_([r[0] for r in sums])).all()
    } if sums else {}

    rows: List[TrialBalanceRow] = []
    for account_id, debit, credit in sums:
        acc = accounts.get(account_id)
        rows.append(
            TrialBalanceRow(
                account_id=account_id,
                account_name=acc.name if acc else "",
                account_type=acc.account_type if acc else "",
                total_debit=money2(debit),
                total_credit=money2(credit),
            ))

    total_debit = money2(sum((r.total_debit for r in rows), D0))
    total_credit = money2(sum((r.total_credit for r in rows), D0))
    return TrialBalance(
        from_date=from_date,
        to_date=to_date,
        location_id=location_id,
        rows=rows,
        total_debit=total_debit,
        total_credit=total_credit,
        is_balanced=within_tolerance(total_debit, total_credit,
                                     settings.BALANCE_TOLERANCE),
    )


def get_ledger(db: Session,
               account_id: int,
               from_date: Optional[date] = None,
               to_date: Optional[date] = None,
               *,
               location_id: Optional[int] = None) -> List[LedgerLine]:
    """
    Chronological entries of one account with a running balance folded
    left to right (+debit -credit). None bounds are open.
    """
    rows = (_live_entries(db, from_date, to_date, location_id).join(
        VoucherLog, VoucherLog.id == VoucherEntry.voucher_log_id).filter(
            VoucherEntry.account_id == account_id).with_entities(
                VoucherEntry, VoucherLog.voucher_number,
                VoucherLog.type).order_by(VoucherEntry.voucher_date.asc(),
                                          VoucherEntry.id.asc()).all())

    running = D0
    out: List[LedgerLine] = []
    for e, voucher_number, voucher_type in rows:
        debit, credit = money2(e.debit), money2(e.credit)
        running = running + debit - credit
        out.append(
            LedgerLine(
                entry_id=e.id,
                voucher_log_id=e.voucher_log_id,
                voucher_number=voucher_number,
                voucher_type=voucher_type,
                voucher_date=e.voucher_date,
                account_id=e.account_id,
                narration=e.narration,
                debit=debit,
                credit=credit,
                running_balance=money2(running),
                batch_identifier=e.batch_identifier,
                location_id=e.location_id,
            ))
    return out


def get_cash_book(db: Session,
                  from_date: Optional[date] = None,
                  to_date: Optional[date] = None,
                  location_id: Optional[int] = None,
                  *,
                  conventions: Optional[AccountConventions] = None
                  ) -> List[LedgerLine]:
    conventions = conventions or settings.account_conventions()
    return get_ledger(db,
                      conventions.cash_account_id,
                      from_date,
                      to_date,
                      location_id=location_id)


# -------------------------
# audit
# -------------------------
def reconcile_account_balances(db: Session,
                               *,
                               repair: bool = False) -> List[BalanceDrift]:
    """
    Replay the live entries per account and compare with the cached
    balances. With repair=True the cache is overwritten with the replayed value.
    """
    replayed: Dict[int, Decimal] = {
        account_id: money2(D(debit) - D(credit))
        for account_id, debit, credit in _live_entries(db).with_entities(
            VoucherEntry.account_id,
            func.coalesce(func.sum(VoucherEntry.debit), 0),
            func.coalesce(func.sum(VoucherEntry.credit), 0),
        ).group_by(VoucherEntry.account_id).all()
    }
    cached: Dict[int, AccountBalance] = {
        b.account_id: b
        for b in db.query(AccountBalance).all()
    }

    drifts: List[BalanceDrift] = []
    for account_id in sorted(set(replayed) | set(cached)):
        ledger_balance = replayed.get(account_id, D0)
        row = cached.get(account_id)
        cached_balance = money2(row.balance_amount if row else 0)
        if cached_balance == ledger_balance:
            continue

        logger.warning("Account %s balance drift: cached %s, ledger %s",
                       account_id, cached_balance, ledger_balance)
        if repair:
            if row is None:
                row = AccountBalance(account_id=account_id)
                db.add(row)
            row.balance_amount = ledger_balance
        drifts.append(
            BalanceDrift(account_id=account_id,
                         cached_balance=cached_balance,
                         ledger_balance=ledger_balance,
                         repaired=repair))

    if repair and drifts:
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to repair account balances")
            raise
        logger.info("Repaired %s account balance(s)", len(drifts))
    return drifts


# -------------------------
# patient statement
# -------------------------
def get_patient_account_statement(
        db: Session,
        patient_id,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        *,
        conventions: Optional[AccountConventions] = None
) -> PatientAccountStatement:
    """Final bills billed vs. receipt credits posted for one patient."""
    conventions = conventions or settings.account_conventions()
    patient_key = str(patient_id)

    bills_q = db.query(FinalBilling)
    try:
        bills_q = bills_q.filter(FinalBilling.patient_id == int(patient_id))
    except (TypeError, ValueError):
        bills_q = bills_q.filter(false())
    if from_date is not None:
        bills_q = bills_q.filter(FinalBilling.bill_date >= from_date)
    if to_date is not None:
        bills_q = bills_q.filter(FinalBilling.bill_date <= to_date)
    bills = bills_q.order_by(FinalBilling.id.asc()).all()

    receipts = (_live_entries(db, from_date, to_date).join(
        VoucherLog, VoucherLog.id == VoucherEntry.voucher_log_id).filter(
            VoucherLog.type == VoucherType.RECEIPT.value,
            VoucherLog.patient_id == patient_key,
            VoucherEntry.account_id == conventions.receivables_account_id,
            VoucherEntry.credit.isnot(None),
        ).with_entities(VoucherEntry, VoucherLog.voucher_number).order_by(
            VoucherEntry.voucher_date.asc(), VoucherEntry.id.asc()).all())

    payments = [
        PatientPaymentLine(
            voucher_number=number,
            voucher_date=e.voucher_date,
            narration=e.narration,
            amount=money2(e.credit),
        ) for e, number in receipts
    ]
    total_billed = money2(sum((D(b.total_bill_amount) for b in bills), D0))
    total_paid = money2(sum((p.amount for p in payments), D0))

    return PatientAccountStatement(
        patient_id=patient_key,
        billings=[{
            "bill_number": b.bill_number,
            "bill_date": b.bill_date,
            "total_bill_amount": money2(b.total_bill_amount),
            "balance_amount": money2(b.balance_amount),
        } for b in bills],
        payments=payments,
        total_billed=total_billed,
        total_paid=total_paid,
        outstanding=money2(total_billed - total_paid),
    )
