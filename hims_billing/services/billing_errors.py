# hims_billing/services/billing_errors.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional


class BillingError(RuntimeError):
    pass


class NotFoundError(BillingError):
    """Patient, account or voucher batch missing where one is required."""
    pass


class VoucherValidationError(BillingError):
    pass


class BalanceMismatchError(VoucherValidationError):

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Total debits ({total_debit}) must equal total credits ({total_credit})"
        )


class PartialPostError(BillingError):
    """
    The voucher header was committed but its entries / balance updates were not.
    The header is left Failed (or Pending, if marking it failed also failed).
    """

    def __init__(self,
                 message: str,
                 *,
                 voucher_number: Optional[str] = None,
                 batch_identifier: Optional[str] = None):
        self.voucher_number = voucher_number
        self.batch_identifier = batch_identifier
        super().__init__(message)
