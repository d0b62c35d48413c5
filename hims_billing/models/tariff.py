# hims_billing/models/tariff.py
from __future__ import annotations

from sqlalchemy import (Column, Integer, String, Numeric, Boolean,
                        UniqueConstraint, Index, ForeignKey)
from sqlalchemy.orm import relationship

from hims_billing.db.base import Base


class TariffStandard(Base):
    """
    Named rate schedule (self-pay, CGHS, ESIC, PM-JAY ...).
    Ward daily rates live here; every other category is in TariffAmount.
    """
    __tablename__ = "tariff_standards"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    ward_ac_rate = Column(Numeric(12, 2), nullable=True)
    ward_non_ac_rate = Column(Numeric(12, 2), nullable=True)
    ward_deluxe_rate = Column(Numeric(12, 2), nullable=True)
    ward_icu_rate = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, default=True)

    amounts = relationship("TariffAmount", back_populates="tariff_standard")


class TariffAmount(Base):
    __tablename__ = "tariff_amounts"
    __table_args__ = (Index("ix_tariff_amounts_standard_category",
                            "tariff_standard_id", "category"), )

    id = Column(Integer, primary_key=True)
    tariff_standard_id = Column(Integer,
                                ForeignKey("tariff_standards.id"),
                                nullable=False)
    # nursing | doctor | laboratory | radiology | surgery | other
    category = Column(String(20), nullable=False)
    name = Column(String(150), default="")
    nabh_charges = Column(Numeric(12, 2), nullable=True)
    non_nabh_charges = Column(Numeric(12, 2), nullable=True)

    tariff_standard = relationship("TariffStandard", back_populates="amounts")


class Configuration(Base):
    """Key/value hospital configuration (registration_charge, consultant_charge ...)."""
    __tablename__ = "configurations"
    __table_args__ = (UniqueConstraint("key", name="uq_configurations_key"), )

    id = Column(Integer, primary_key=True)
    key = Column(String(100), nullable=False)
    value = Column(String(255), nullable=True)
