# hims_billing/models/charges.py
"""
Category source records owned by the service / lab / radiology / OT / pharmacy
modules. Billing only reads them.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (Column, Integer, String, Numeric, DateTime, Date,
                        ForeignKey)
from sqlalchemy.orm import relationship

from hims_billing.db.base import Base


class ServiceBill(Base):
    """Nursing and miscellaneous services, billed quantity x tariff."""
    __tablename__ = "service_bills"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    tariff_amount_id = Column(Integer,
                              ForeignKey("tariff_amounts.id"),
                              nullable=False)
    service_name = Column(String(150), default="")
    quantity = Column(Integer, nullable=True, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    tariff = relationship("TariffAmount")


class LabOrder(Base):
    __tablename__ = "laboratory_tokens"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    tariff_amount_id = Column(Integer,
                              ForeignKey("tariff_amounts.id"),
                              nullable=False)
    test_name = Column(String(150), default="")
    ordered_at = Column(DateTime, default=datetime.utcnow)

    tariff = relationship("TariffAmount")


class RadiologyOrder(Base):
    __tablename__ = "radiology_orders"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    tariff_amount_id = Column(Integer,
                              ForeignKey("tariff_amounts.id"),
                              nullable=False)
    study_name = Column(String(150), default="")
    ordered_at = Column(DateTime, default=datetime.utcnow)

    tariff = relationship("TariffAmount")


class SurgeryAppointment(Base):
    __tablename__ = "opt_appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    tariff_amount_id = Column(Integer,
                              ForeignKey("tariff_amounts.id"),
                              nullable=False)
    surgery_name = Column(String(150), default="")
    scheduled_at = Column(DateTime, nullable=True)

    tariff = relationship("TariffAmount")


class PharmacySalesBill(Base):
    """Pharmacy sales carry their own flat total (no tariff lookup)."""
    __tablename__ = "pharmacy_sales_bills"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    bill_number = Column(String(30), nullable=True)
    total_amount = Column(Numeric(12, 2),
                          nullable=False,
                          default=Decimal("0.00"))
    sale_date = Column(Date, nullable=True)
