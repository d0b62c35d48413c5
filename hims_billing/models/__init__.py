# hims_billing/models/__init__.py
from .accounting import (Account, AccountBalance, VoucherLog, VoucherEntry,
                         VoucherType, VoucherStatus)
from .billing import (NumberSeries, NumberResetPeriod, Billing, FinalBilling,
                      PaymentCategory)
from .charges import (ServiceBill, LabOrder, RadiologyOrder,
                      SurgeryAppointment, PharmacySalesBill)
from .ipd import Patient, Ward, Bed, WardStay, NursingNote
from .tariff import TariffStandard, TariffAmount, Configuration

__all__ = [
    "Account",
    "AccountBalance",
    "VoucherLog",
    "VoucherEntry",
    "VoucherType",
    "VoucherStatus",
    "NumberSeries",
    "NumberResetPeriod",
    "Billing",
    "FinalBilling",
    "PaymentCategory",
    "ServiceBill",
    "LabOrder",
    "RadiologyOrder",
    "SurgeryAppointment",
    "PharmacySalesBill",
    "Patient",
    "Ward",
    "Bed",
    "WardStay",
    "NursingNote",
    "TariffStandard",
    "TariffAmount",
    "Configuration",
]
