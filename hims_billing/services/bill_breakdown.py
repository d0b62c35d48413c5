# hims_billing/services/bill_breakdown.py
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from hims_billing.core.config import settings
from hims_billing.models.ipd import Patient
from hims_billing.schemas.billing import BillBreakdown
from hims_billing.services import charge_aggregators as charges
from hims_billing.services.billing_errors import NotFoundError
from hims_billing.services.billing_math import sum_money
from hims_billing.services.ward_charges import calculate_ward_charges
from hims_billing.utils.timezone import as_naive_local, now_local

logger = logging.getLogger(__name__)


def get_patient_info(db: Session, patient_id: int) -> Optional[Patient]:
    return db.get(Patient, patient_id)


def calculate_admission_days(admission_date: Optional[datetime],
                             discharge_date: Optional[datetime] = None,
                             *,
                             now: Optional[datetime] = None) -> int:
    """max(1, ceil(discharge-or-now - admission)) in days; 1 without an admission date."""
    if admission_date is None:
        return 1
    end = as_naive_local(discharge_date) or as_naive_local(now) or now_local()
    seconds = (end - as_naive_local(admission_date)).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def is_nabh_patient(patient: Patient) -> bool:
    # either signal is enough
    if (patient.hospital_type or "").strip().upper() == "NABH":
        return True
    return patient.location_id is not None and int(
        patient.location_id) in settings.NABH_LOCATION_IDS


def calculate_total_bill(db: Session,
                         patient_id: int,
                         *,
                         now: Optional[datetime] = None) -> BillBreakdown:
    """
    Live charge breakdown for one patient.

    Only the patient row is mandatory (NotFoundError); every category without
    source rows contributes 0. Advances, discounts and payments are applied
    one layer up, in billing_actions.
    """
    now = now or now_local()
    patient = get_patient_info(db, patient_id)
    if not patient:
        raise NotFoundError(f"Patient {patient_id} not found")

    total_days = calculate_admission_days(patient.admission_date,
                                          patient.discharge_date,
                                          now=now)
    is_nabh = is_nabh_patient(patient)
    standard_id = patient.tariff_standard_id or settings.DEFAULT_TARIFF_STANDARD_ID

    # one session, so the independent aggregators run one after another
    surgery = charges.calculate_surgery_charges(db,
                                                patient_id,
                                                tariff_standard_id=standard_id,
                                                is_nabh=is_nabh)
    b = BillBreakdown(
        ward_charges=calculate_ward_charges(db, patient_id, now=now),
        nursing_charges=charges.calculate_nursing_charges(
            db, patient_id, tariff_standard_id=standard_id, is_nabh=is_nabh),
        doctor_charges=charges.calculate_doctor_charges(
            db,
            total_days=total_days,
            tariff_standard_id=standard_id,
            is_nabh=is_nabh),
        registration_charges=charges.registration_charge(db),
        consultant_charges=charges.consultant_charge(db),
        lab_charges=charges.calculate_lab_charges(
            db, patient_id, tariff_standard_id=standard_id, is_nabh=is_nabh),
        radiology_charges=charges.calculate_radiology_charges(
            db, patient_id, tariff_standard_id=standard_id, is_nabh=is_nabh),
        pharmacy_charges=charges.calculate_pharmacy_total(db, patient_id),
        surgery_charges=surgery,
        anesthesia_charges=charges.calculate_anesthesia_charges(surgery),
        other_charges=charges.calculate_other_charges(db,
                                                      patient_id,
                                                      is_nabh=is_nabh),
    )
    b.total_charges = sum_money(b.categories().values())

    logger.debug("Bill breakdown for patient %s (%s days, nabh=%s): %s",
                 patient_id, total_days, is_nabh, b.total_charges)
    return b
