# hims_billing/services/charge_aggregators.py
"""
Per-category charge roll-ups for one patient.

Every aggregator reads source rows owned by other modules (service bills,
lab tokens, radiology orders, OT appointments, pharmacy sales) and returns a
2-place Decimal. An empty source set is 0, never an error.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from hims_billing.core.config import settings
from hims_billing.models.charges import (LabOrder, PharmacySalesBill,
                                         RadiologyOrder, ServiceBill,
                                         SurgeryAppointment)
from hims_billing.models.tariff import Configuration, TariffAmount
from hims_billing.services.billing_math import D, money2, sum_money
from hims_billing.services.tariff_resolver import (ChargeCategory,
                                                   doctor_daily_rate,
                                                   find_tariff_amount,
                                                   pick_rate)

logger = logging.getLogger(__name__)


def _tariffed_rows(db: Session, model, patient_id: int,
                   category: ChargeCategory,
                   tariff_standard_id: Optional[int]) -> Iterable:
    q = (db.query(model, TariffAmount).join(
        TariffAmount, TariffAmount.id == model.tariff_amount_id).filter(
            model.patient_id == patient_id,
            TariffAmount.category == category.value,
        ))
    if tariff_standard_id is not None:
        q = q.filter(TariffAmount.tariff_standard_id == tariff_standard_id)
    return q.order_by(model.id.asc()).all()


def _quantity_total(rows, *, is_nabh: bool) -> Decimal:
    return sum_money(
        D(row.quantity or 1) * pick_rate(tariff, is_nabh=is_nabh)
        for row, tariff in rows)


def _per_record_total(rows,
                      *,
                      is_nabh: bool,
                      cross_fallback: bool = True) -> Decimal:
    return sum_money(
        pick_rate(tariff, is_nabh=is_nabh, cross_fallback=cross_fallback)
        for _, tariff in rows)


# -------------------------
# aggregators
# -------------------------
def calculate_nursing_charges(db: Session,
                              patient_id: int,
                              *,
                              tariff_standard_id: Optional[int],
                              is_nabh: bool = False) -> Decimal:
    rows = _tariffed_rows(db, ServiceBill, patient_id,
                          ChargeCategory.NURSING, tariff_standard_id)
    return _quantity_total(rows, is_nabh=is_nabh)


def calculate_other_charges(db: Session,
                            patient_id: int,
                            *,
                            is_nabh: bool = False) -> Decimal:
    # miscellaneous services are billed under whatever standard they were raised with
    rows = _tariffed_rows(db, ServiceBill, patient_id, ChargeCategory.OTHER,
                          None)
    return _quantity_total(rows, is_nabh=is_nabh)


def calculate_doctor_charges(db: Session,
                             *,
                             total_days: int,
                             tariff_standard_id: Optional[int],
                             is_nabh: bool = False) -> Decimal:
    """Flat per-day professional fee: admission days x daily doctor rate."""
    row = find_tariff_amount(db, tariff_standard_id, ChargeCategory.DOCTOR)
    if row is None:
        logger.warning(
            "No doctor tariff for standard %s; billing %s/day",
            tariff_standard_id,
            settings.DOCTOR_DEFAULT_DAILY_RATE,
        )
    return money2(doctor_daily_rate(row, is_nabh=is_nabh) * int(total_days))


def calculate_lab_charges(db: Session,
                          patient_id: int,
                          *,
                          tariff_standard_id: Optional[int],
                          is_nabh: bool = False) -> Decimal:
    rows = _tariffed_rows(db, LabOrder, patient_id, ChargeCategory.LABORATORY,
                          tariff_standard_id)
    return _per_record_total(rows, is_nabh=is_nabh,
                             cross_fallback=False)


def calculate_radiology_charges(db: Session,
                                patient_id: int,
                                *,
                                tariff_standard_id: Optional[int],
                                is_nabh: bool = False) -> Decimal:
    rows = _tariffed_rows(db, RadiologyOrder, patient_id,
                          ChargeCategory.RADIOLOGY, tariff_standard_id)
    return _per_record_total(rows, is_nabh=is_nabh,
                             cross_fallback=False)


def calculate_surgery_charges(db: Session,
                              patient_id: int,
                              *,
                              tariff_standard_id: Optional[int],
                              is_nabh: bool = False) -> Decimal:
    rows = _tariffed_rows(db, SurgeryAppointment, patient_id,
                          ChargeCategory.SURGERY, tariff_standard_id)
    return _per_record_total(rows, is_nabh=is_nabh)


def calculate_pharmacy_total(db: Session, patient_id: int) -> Decimal:
    total = (db.query(func.coalesce(func.sum(
        PharmacySalesBill.total_amount), 0)).filter(
            PharmacySalesBill.patient_id == patient_id).scalar())
    return money2(total)


def calculate_anesthesia_charges(surgery_charges) -> Decimal:
    return money2(D(surgery_charges) * D(settings.ANESTHESIA_RATE))


# -------------------------
# fixed charges
# -------------------------
def get_configuration_amount(db: Session, key: str) -> Optional[Decimal]:
    """Numeric value of a configurations row; None when missing or not a number."""
    value = (db.query(Configuration.value).filter(
        Configuration.key == key).scalar())
    if value is None or not str(value).strip():
        return None
    try:
        return money2(Decimal(str(value).strip()))
    except InvalidOperation:
        logger.warning("Configuration %s is not a number: %r", key, value)
        return None


def registration_charge(db: Session) -> Decimal:
    amount = get_configuration_amount(db, "registration_charge")
    if amount is None:
        return money2(settings.REGISTRATION_CHARGE_DEFAULT)
    return amount


def consultant_charge(db: Session) -> Decimal:
    amount = get_configuration_amount(db, "consultant_charge")
    if amount is None:
        return money2(settings.CONSULTANT_CHARGE_DEFAULT)
    return amount
