# hims_billing/services/number_series.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from hims_billing.models.billing import NumberResetPeriod, NumberSeries
from hims_billing.utils.timezone import now_local


def _period_key(dt: datetime, reset: NumberResetPeriod) -> str:
    if reset == NumberResetPeriod.NONE:
        return ""
    if reset == NumberResetPeriod.YEAR:
        return dt.strftime("%Y")
    if reset == NumberResetPeriod.DAY:
        return dt.strftime("%Y%m%d")
    return dt.strftime("%Y%m")  # MONTH


def next_number(
    db: Session,
    *,
    doc_type: str,
    scope_id: int = 0,
    reset_period: NumberResetPeriod,
    prefix: str,
    padding: int = 3,
    now: Optional[datetime] = None,
    seed: Optional[Callable[[], int]] = None,
) -> str:
    """
    Next number of a (doc_type, scope, period) series, e.g. JV20240101 + 007.

    The counter row is locked FOR UPDATE and only flushed; the caller commits
    it together with the document that uses the number. A new period opens a
    new row; `seed` returns the last number already used in that period for
    series that existed before the counter table.
    """
    now = now or now_local()
    pk = _period_key(now, reset_period)

    row = (db.query(NumberSeries).filter(
        NumberSeries.doc_type == doc_type,
        NumberSeries.scope_id == scope_id,
        NumberSeries.period_key == pk,
    ).with_for_update().first())

    if not row:
        last_used = int(seed() or 0) if seed else 0
        row = NumberSeries(
            doc_type=doc_type,
            scope_id=scope_id,
            period_key=pk,
            reset_period=reset_period.value,
            prefix=prefix,
            padding=padding,
            next_number=last_used + 1,
        )
        db.add(row)
        db.flush()

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    return f"{prefix}{str(n).zfill(int(row.padding or padding))}"
