# hims_billing/services/tariff_resolver.py
from __future__ import annotations

import enum
import logging
from decimal import Decimal
from typing import Dict, Optional, Union

from sqlalchemy.orm import Session

from hims_billing.core.config import settings
from hims_billing.models.tariff import TariffAmount, TariffStandard
from hims_billing.services.billing_math import money2

logger = logging.getLogger(__name__)


class ChargeCategory(str, enum.Enum):
    WARD = "ward"
    NURSING = "nursing"
    DOCTOR = "doctor"
    LABORATORY = "laboratory"
    RADIOLOGY = "radiology"
    SURGERY = "surgery"
    OTHER = "other"


class HospitalType(str, enum.Enum):
    NABH = "NABH"
    NON_NABH = "NON_NABH"


HospitalTypeLike = Union[HospitalType, str, bool, None]

WARD_RATE_COLUMNS: Dict[str, str] = {
    "icu": "ward_icu_rate",
    "deluxe": "ward_deluxe_rate",
    "ac": "ward_ac_rate",
    "non_ac": "ward_non_ac_rate",
}

# billed from the selected NABH / non-NABH column only, never the other one
SINGLE_COLUMN_CATEGORIES = frozenset(
    {ChargeCategory.LABORATORY, ChargeCategory.RADIOLOGY})


def is_nabh_type(hospital_type: HospitalTypeLike) -> bool:
    if isinstance(hospital_type, bool):
        return hospital_type
    if isinstance(hospital_type, HospitalType):
        return hospital_type == HospitalType.NABH
    return (hospital_type or "").strip().upper() == HospitalType.NABH.value


# -------------------------
# ward type -> rate column
# -------------------------
def ward_rate_key(ward_type: Optional[str]) -> str:
    """icu, then deluxe, then ac (case-insensitive substrings); else non-AC."""
    key = (ward_type or "").lower()
    if "icu" in key:
        return "icu"
    if "deluxe" in key:
        return "deluxe"
    if "ac" in key:
        return "ac"
    return "non_ac"


def ward_default_rate(rate_key: str) -> Decimal:
    return {
        "icu": settings.WARD_ICU_DEFAULT_RATE,
        "deluxe": settings.WARD_DELUXE_DEFAULT_RATE,
        "ac": settings.WARD_AC_DEFAULT_RATE,
        "non_ac": settings.WARD_NON_AC_DEFAULT_RATE,
    }[rate_key]


def ward_daily_rate(standard: Optional[TariffStandard],
                    ward_type: Optional[str]) -> Decimal:
    key = ward_rate_key(ward_type)
    rate = getattr(standard, WARD_RATE_COLUMNS[key],
                   None) if standard else None
    if rate is None:
        logger.warning(
            "No %s ward rate on tariff standard %s; using default",
            key,
            getattr(standard, "id", None),
        )
        return money2(ward_default_rate(key))
    return money2(rate)


# -------------------------
# category rates
# -------------------------
def pick_rate(
    row: Optional[TariffAmount],
    *,
    is_nabh: bool,
    default=0,
    cross_fallback: bool = True,
) -> Decimal:
    """
    NABH or non-NABH column of a tariff row.
    An empty column falls back to the other column (when allowed), then to default.
    """
    if row is None:
        return money2(default)

    if is_nabh:
        primary, secondary = row.nabh_charges, row.non_nabh_charges
    else:
        primary, secondary = row.non_nabh_charges, row.nabh_charges

    if primary is not None:
        return money2(primary)
    if cross_fallback and secondary is not None:
        return money2(secondary)
    return money2(default)


def find_tariff_amount(db: Session, tariff_standard_id: Optional[int],
                       category: ChargeCategory) -> Optional[TariffAmount]:
    return (db.query(TariffAmount).filter(
        TariffAmount.tariff_standard_id == tariff_standard_id,
        TariffAmount.category == ChargeCategory(category).value,
    ).order_by(TariffAmount.id.asc()).first())


def doctor_daily_rate(row: Optional[TariffAmount], *, is_nabh: bool) -> Decimal:
    if row is None:
        return money2(settings.DOCTOR_DEFAULT_DAILY_RATE)
    fallback = (settings.DOCTOR_NABH_FALLBACK_RATE
                if is_nabh else settings.DOCTOR_NON_NABH_FALLBACK_RATE)
    return pick_rate(row,
                     is_nabh=is_nabh,
                     default=fallback,
                     cross_fallback=False)


def resolve_rate(
    db: Session,
    tariff_standard_id: Optional[int],
    category: Union[ChargeCategory, str],
    hospital_type: HospitalTypeLike = HospitalType.NON_NABH,
    *,
    ward_type: Optional[str] = None,
) -> Decimal:
    """
    Applicable rate for one charge category under a tariff standard.

    Never raises for missing tariff data: a missing standard / row degrades to
    the category default (ward and doctor have real defaults, the rest are 0).
    Ward rates do not depend on the hospital type.
    """
    category = ChargeCategory(category)
    is_nabh = is_nabh_type(hospital_type)

    if category == ChargeCategory.WARD:
        standard = (db.get(TariffStandard, tariff_standard_id)
                    if tariff_standard_id is not None else None)
        return ward_daily_rate(standard, ward_type)

    row = find_tariff_amount(db, tariff_standard_id, category)

    if category == ChargeCategory.DOCTOR:
        if row is None:
            logger.warning(
                "No doctor tariff for standard %s; using default daily rate",
                tariff_standard_id)
        return doctor_daily_rate(row, is_nabh=is_nabh)

    if row is None:
        logger.warning("No %s tariff for standard %s; rate defaults to 0",
                       category.value, tariff_standard_id)
    return pick_rate(row,
                     is_nabh=is_nabh,
                     cross_fallback=category not in SINGLE_COLUMN_CATEGORIES)
