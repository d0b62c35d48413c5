"""
Factories for billing tests. Each helper adds and commits one row.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from hims_billing.models.charges import (LabOrder, PharmacySalesBill,
                                         RadiologyOrder, ServiceBill,
                                         SurgeryAppointment)
from hims_billing.models.ipd import Bed, Patient, Ward, WardStay
from hims_billing.models.tariff import Configuration, TariffAmount, TariffStandard


def _save(db: Session, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def create_tariff_standard(db: Session, name: str = "Self Pay",
                           **rates) -> TariffStandard:
    return _save(db, TariffStandard(name=name, **rates))


def create_tariff_amount(db: Session,
                         standard: TariffStandard,
                         category: str,
                         nabh=None,
                         non_nabh=None,
                         name: str = "") -> TariffAmount:
    return _save(
        db,
        TariffAmount(
            tariff_standard_id=standard.id,
            category=category,
            name=name or category.title(),
            nabh_charges=Decimal(str(nabh)) if nabh is not None else None,
            non_nabh_charges=(Decimal(str(non_nabh))
                              if non_nabh is not None else None),
        ))


def create_patient(db: Session,
                   first_name: str = "Test",
                   last_name: str = "Patient",
                   admission_date: Optional[datetime] = None,
                   discharge_date: Optional[datetime] = None,
                   tariff_standard: Optional[TariffStandard] = None,
                   hospital_type: Optional[str] = None,
                   location_id: Optional[int] = 1) -> Patient:
    return _save(
        db,
        Patient(
            first_name=first_name,
            last_name=last_name,
            admission_date=admission_date,
            discharge_date=discharge_date,
            tariff_standard_id=tariff_standard.id if tariff_standard else None,
            hospital_type=hospital_type,
            location_id=location_id,
        ))


def create_ward(db: Session, name: str = "General Ward",
                ward_type: str = "General") -> Ward:
    return _save(db, Ward(name=name, ward_type=ward_type))


def create_bed(db: Session, ward: Ward, code: str,
               status: str = "available") -> Bed:
    return _save(db, Bed(ward_id=ward.id, code=code, status=status))


def create_ward_stay(db: Session,
                     patient: Patient,
                     ward: Ward,
                     in_date: datetime,
                     out_date: Optional[datetime] = None,
                     tariff_standard: Optional[TariffStandard] = None,
                     bed: Optional[Bed] = None) -> WardStay:
    return _save(
        db,
        WardStay(
            patient_id=patient.id,
            ward_id=ward.id,
            bed_id=bed.id if bed else None,
            tariff_standard_id=tariff_standard.id if tariff_standard else None,
            in_date=in_date,
            out_date=out_date,
        ))


def create_service_bill(db: Session, patient: Patient, tariff: TariffAmount,
                        quantity: Optional[int] = 1) -> ServiceBill:
    return _save(
        db,
        ServiceBill(patient_id=patient.id,
                    tariff_amount_id=tariff.id,
                    service_name=tariff.name,
                    quantity=quantity))


def create_lab_order(db: Session, patient: Patient,
                     tariff: TariffAmount) -> LabOrder:
    return _save(
        db,
        LabOrder(patient_id=patient.id,
                 tariff_amount_id=tariff.id,
                 test_name=tariff.name))


def create_radiology_order(db: Session, patient: Patient,
                           tariff: TariffAmount) -> RadiologyOrder:
    return _save(
        db,
        RadiologyOrder(patient_id=patient.id,
                       tariff_amount_id=tariff.id,
                       study_name=tariff.name))


def create_surgery(db: Session, patient: Patient,
                   tariff: TariffAmount) -> SurgeryAppointment:
    return _save(
        db,
        SurgeryAppointment(patient_id=patient.id,
                           tariff_amount_id=tariff.id,
                           surgery_name=tariff.name))


def create_pharmacy_sale(db: Session, patient: Patient,
                         amount) -> PharmacySalesBill:
    return _save(
        db,
        PharmacySalesBill(patient_id=patient.id,
                          total_amount=Decimal(str(amount))))


def set_configuration(db: Session, key: str, value: Optional[str]) -> None:
    row = db.query(Configuration).filter(Configuration.key == key).first()
    if row is None:
        db.add(Configuration(key=key, value=value))
    else:
        row.value = value
    db.commit()
