# hims_billing/models/ipd.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import (Column, Integer, String, DateTime, Text, ForeignKey,
                        Boolean, Index)
from sqlalchemy.orm import relationship

from hims_billing.db.base import Base

# ---------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    uhid = Column(String(30), unique=True, nullable=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20), nullable=True)
    ipd_number = Column(String(30), nullable=True)

    admission_date = Column(DateTime, nullable=True)
    discharge_date = Column(DateTime, nullable=True)
    discharge_type = Column(String(30), nullable=True)

    location_id = Column(Integer, nullable=True)
    tariff_standard_id = Column(Integer,
                                ForeignKey("tariff_standards.id"),
                                nullable=True)
    hospital_type = Column(String(10), nullable=True)  # NABH | NON_NABH

    # current bed (cleared on discharge)
    ward_id = Column(Integer, ForeignKey("wards.id"), nullable=True)
    bed_id = Column(Integer, ForeignKey("beds.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


# ---------------------------------------------------------------------
# Ward masters
# ---------------------------------------------------------------------


class Ward(Base):
    __tablename__ = "wards"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    # free text: "ICU", "Deluxe", "AC General", "Non AC", ...
    ward_type = Column(String(50), default="General")
    is_active = Column(Boolean, default=True)

    beds = relationship("Bed", back_populates="ward")


class Bed(Base):
    __tablename__ = "beds"
    __table_args__ = (Index("ix_beds_ward_status", "ward_id", "status"), )

    id = Column(Integer, primary_key=True)
    ward_id = Column(Integer, ForeignKey("wards.id"), nullable=False)
    code = Column(String(30), unique=True, nullable=False)
    status = Column(String(20), default="available")  # available | occupied
    patient_id = Column(Integer, nullable=True, index=True)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    ward = relationship("Ward", back_populates="beds")


# ---------------------------------------------------------------------
# Ward occupancy history
# ---------------------------------------------------------------------


class WardStay(Base):
    """One ward-stay interval; out_date is NULL while the patient is still in it."""
    __tablename__ = "ward_patients"
    __table_args__ = (Index("ix_ward_patients_patient_in", "patient_id",
                            "in_date"), )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    ward_id = Column(Integer, ForeignKey("wards.id"), nullable=False)
    bed_id = Column(Integer, ForeignKey("beds.id"), nullable=True)
    tariff_standard_id = Column(Integer,
                                ForeignKey("tariff_standards.id"),
                                nullable=True)
    doctor_id = Column(Integer, nullable=True)

    in_date = Column(DateTime, nullable=False)
    out_date = Column(DateTime, nullable=True)

    admission_reason = Column(String(255), default="")
    transfer_reason = Column(String(255), nullable=True)
    discharge_type = Column(String(30), nullable=True)
    transferred_from_id = Column(Integer,
                                 ForeignKey("ward_patients.id"),
                                 nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    ward = relationship("Ward")
    tariff_standard = relationship("TariffStandard")


class NursingNote(Base):
    __tablename__ = "nursing_notes"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    ward_stay_id = Column(Integer,
                          ForeignKey("ward_patients.id"),
                          nullable=True)
    note_type = Column(String(30), default="General")
    note = Column(Text, nullable=False)
    nurse_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
