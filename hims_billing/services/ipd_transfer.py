# hims_billing/services/ipd_transfer.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hims_billing.models.ipd import Bed, NursingNote, Patient, WardStay
from hims_billing.schemas.billing import DischargeIn, WardTransferIn
from hims_billing.utils.resp import err, ok
from hims_billing.utils.timezone import as_naive_local, now_local

logger = logging.getLogger(__name__)

BED_AVAILABLE = "available"
BED_OCCUPIED = "occupied"


def _open_stay(db: Session, patient_id: int) -> Optional[WardStay]:
    return (db.query(WardStay).filter(
        WardStay.patient_id == patient_id,
        WardStay.out_date.is_(None),
    ).order_by(WardStay.in_date.desc(), WardStay.id.desc()).first())


def _release_bed(db: Session, bed_id: Optional[int]) -> None:
    if not bed_id:
        return
    bed = db.query(Bed).filter(Bed.id == bed_id).with_for_update().first()
    if bed:
        bed.status = BED_AVAILABLE
        bed.patient_id = None


def _add_nursing_note(db: Session, *, patient_id: int,
                      ward_stay_id: Optional[int], note_type: str, note: str,
                      nurse_id: Optional[int], now: datetime) -> None:
    """Best effort: a failed note never blocks the transfer / discharge."""
    try:
        with db.begin_nested():
            db.add(
                NursingNote(
                    patient_id=patient_id,
                    ward_stay_id=ward_stay_id,
                    note_type=note_type,
                    note=note,
                    nurse_id=nurse_id,
                    created_at=now,
                ))
    except SQLAlchemyError:
        logger.warning("Nursing note for patient %s not saved",
                       patient_id,
                       exc_info=True)


def transfer_ward(db: Session,
                  data: Union[WardTransferIn, dict],
                  *,
                  now: Optional[datetime] = None) -> dict:
    """
    Move an admitted patient to another ward / bed: the open stay is closed
    at `now` and a new one opened in the target ward with the same tariff.
    """
    try:
        data = WardTransferIn.model_validate(data)
    except ValidationError as e:
        return err("Invalid transfer", code="VALIDATION", details=e.errors())

    now = now or now_local()
    patient = db.get(Patient, data.patient_id)
    if not patient:
        return err(f"Patient {data.patient_id} not found", code="NOT_FOUND")
    if patient.discharge_date is not None:
        return err("Patient is already discharged", code="INVALID_STATE")

    bed = (db.query(Bed).filter(Bed.id == data.new_bed_id).with_for_update().first())
    if not bed or bed.ward_id != data.new_ward_id:
        return err("Bed not found in the selected ward", code="NOT_FOUND")
    if (bed.status or BED_AVAILABLE) != BED_AVAILABLE:
        return err(f"Bed {bed.code} is not available", code="BED_UNAVAILABLE")

    try:
        current = _open_stay(db, patient.id)
        if current:
            current.out_date = now
            current.transfer_reason = data.transfer_reason

        if patient.bed_id and patient.bed_id != bed.id:
            _release_bed(db, patient.bed_id)

        stay = WardStay(
            patient_id=patient.id,
            ward_id=data.new_ward_id,
            bed_id=bed.id,
            tariff_standard_id=((current.tariff_standard_id if current else None)
                                or patient.tariff_standard_id),
            doctor_id=current.doctor_id if current else None,
            in_date=now,
            admission_reason=current.admission_reason if current else "",
            transfer_reason=data.transfer_reason,
            transferred_from_id=current.id if current else None,
        )
        db.add(stay)

        bed.status = BED_OCCUPIED
        bed.patient_id = patient.id
        patient.ward_id = data.new_ward_id
        patient.bed_id = bed.id
        db.flush()

        _add_nursing_note(
            db,
            patient_id=patient.id,
            ward_stay_id=stay.id,
            note_type="Transfer",
            note=f"Transferred to bed {bed.code}. {data.transfer_reason}".strip(),
            nurse_id=data.transferred_by,
            now=now,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Ward transfer failed for patient %s", patient.id)
        return err(str(e), code="DB_ERROR")

    logger.info("Patient %s transferred to ward %s bed %s", patient.id,
                data.new_ward_id, bed.id)
    return ok({"ward_stay_id": stay.id, "bed_id": bed.id})


def discharge_patient(db: Session,
                      data: Union[DischargeIn, dict],
                      *,
                      now: Optional[datetime] = None) -> dict:
    """Close the open stay, stamp the discharge on the patient, free the bed."""
    try:
        data = DischargeIn.model_validate(data)
    except ValidationError as e:
        return err("Invalid discharge", code="VALIDATION", details=e.errors())

    now = now or now_local()
    when = as_naive_local(data.discharge_date) or now
    patient = db.get(Patient, data.patient_id)
    if not patient:
        return err(f"Patient {data.patient_id} not found", code="NOT_FOUND")
    if patient.discharge_date is not None:
        return err("Patient is already discharged", code="INVALID_STATE")

    try:
        current = _open_stay(db, patient.id)
        if current:
            current.out_date = when
            current.discharge_type = data.discharge_type

        _release_bed(db, patient.bed_id)
        patient.discharge_date = when
        patient.discharge_type = data.discharge_type
        patient.bed_id = None
        patient.ward_id = None
        db.flush()

        _add_nursing_note(
            db,
            patient_id=patient.id,
            ward_stay_id=current.id if current else None,
            note_type="Discharge",
            note=f"Discharged ({data.discharge_type})",
            nurse_id=data.discharged_by,
            now=now,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Discharge failed for patient %s", patient.id)
        return err(str(e), code="DB_ERROR")

    logger.info("Patient %s discharged (%s)", patient.id, data.discharge_type)
    return ok({"patient_id": patient.id, "discharge_date": when})
