# hims_billing/services/ward_charges.py
from __future__ import annotations

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from hims_billing.models.ipd import Patient, WardStay
from hims_billing.models.tariff import TariffStandard
from hims_billing.schemas.billing import WardStayChargeOut
from hims_billing.services.billing_math import money2, sum_money
from hims_billing.services.tariff_resolver import ward_daily_rate, ward_rate_key
from hims_billing.utils.timezone import as_naive_local, now_local

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def stay_days(in_date: datetime,
              out_date: Optional[datetime],
              *,
              now: Optional[datetime] = None) -> int:
    """
    Whole days billed for one stay: partial days round up and never below 1.
    An open stay (no out_date) runs until now.
    """
    end = as_naive_local(out_date) or as_naive_local(now) or now_local()
    seconds = (end - as_naive_local(in_date)).total_seconds()
    return max(1, math.ceil(seconds / SECONDS_PER_DAY))


def calculate_ward_stay_breakdown(
    db: Session,
    patient_id: int,
    *,
    now: Optional[datetime] = None,
) -> List[WardStayChargeOut]:
    now = now or now_local()
    patient = db.get(Patient, patient_id)
    fallback_standard_id = patient.tariff_standard_id if patient else None

    stays = (db.query(WardStay).options(joinedload(WardStay.ward)).filter(
        WardStay.patient_id == patient_id).order_by(
            WardStay.in_date.asc(), WardStay.id.asc()).all())

    standards: Dict[int, Optional[TariffStandard]] = {}
    out: List[WardStayChargeOut] = []
    for stay in stays:
        standard_id = stay.tariff_standard_id or fallback_standard_id
        if standard_id is not None and standard_id not in standards:
            standards[standard_id] = db.get(TariffStandard, standard_id)
        standard = standards.get(standard_id) if standard_id else None

        ward_type = stay.ward.ward_type if stay.ward else None
        days = stay_days(stay.in_date, stay.out_date, now=now)
        rate = ward_daily_rate(standard, ward_type)

        out.append(
            WardStayChargeOut(
                ward_stay_id=stay.id,
                ward_id=stay.ward_id,
                ward_name=stay.ward.name if stay.ward else None,
                ward_type=ward_type,
                rate_key=ward_rate_key(ward_type),
                in_date=stay.in_date,
                out_date=stay.out_date,
                days=days,
                daily_rate=rate,
                amount=money2(rate * days),
            ))
    return out


def calculate_ward_charges(db: Session,
                           patient_id: int,
                           *,
                           now: Optional[datetime] = None) -> Decimal:
    """Sum of days x daily ward rate over every stay of the patient."""
    lines = calculate_ward_stay_breakdown(db, patient_id, now=now)
    if not lines:
        logger.debug("No ward stays for patient %s", patient_id)
    return sum_money(x.amount for x in lines)
