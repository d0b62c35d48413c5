# hims_billing/services/voucher_numbers.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from hims_billing.models.accounting import VoucherLog, VoucherType
from hims_billing.models.billing import NumberResetPeriod
from hims_billing.services.number_series import next_number
from hims_billing.utils.timezone import now_local

VOUCHER_PREFIXES = {
    VoucherType.RECEIPT: "RV",
    VoucherType.PAYMENT: "PV",
    VoucherType.JOURNAL: "JV",
    VoucherType.CONTRA: "CV",
}

SEQUENCE_DIGITS = 3


def voucher_prefix(voucher_type: Union[VoucherType, str]) -> str:
    return VOUCHER_PREFIXES[VoucherType(voucher_type)]


def last_voucher_sequence(db: Session, voucher_type: VoucherType,
                          location_id: int, day_prefix: str) -> int:
    """Sequence of the newest voucher already numbered under day_prefix (0 if none)."""
    row = (db.query(VoucherLog.voucher_number).filter(
        VoucherLog.type == voucher_type.value,
        VoucherLog.location_id == location_id,
        VoucherLog.voucher_number.like(f"{day_prefix}%"),
    ).order_by(VoucherLog.created_at.desc(), VoucherLog.id.desc()).first())
    if not row:
        return 0
    tail = (row[0] or "")[-SEQUENCE_DIGITS:]
    return int(tail) if tail.isdigit() else 0


def generate_voucher_number(
    db: Session,
    voucher_type: Union[VoucherType, str],
    location_id: int,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    {RV|PV|JV|CV}{YYYYMMDD}{seq:03}, sequence per type, location and day.
    Flushed only; commit with the voucher header.
    """
    voucher_type = VoucherType(voucher_type)
    now = now or now_local()
    day_prefix = f"{voucher_prefix(voucher_type)}{now:%Y%m%d}"

    return next_number(
        db,
        doc_type=voucher_prefix(voucher_type),
        scope_id=int(location_id),
        reset_period=NumberResetPeriod.DAY,
        prefix=day_prefix,
        padding=SEQUENCE_DIGITS,
        now=now,
        seed=lambda: last_voucher_sequence(db, voucher_type, location_id,
                                           day_prefix),
    )
