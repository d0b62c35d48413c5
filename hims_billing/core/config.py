# hims_billing/core/config.py
import os
from decimal import Decimal
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_ints(value: str) -> List[int]:
    return [int(v.strip()) for v in (value or "").split(",") if v.strip()]


def _dec(name: str, default: str) -> Decimal:
    return Decimal(os.getenv(name, default) or default)


class AccountConventions(BaseModel):
    """
    Fixed ledger accounts used by receipt / payment postings.
    Resolved once from settings; every posting validates they exist.
    """
    cash_account_id: int = 1
    bank_account_id: int = 2
    receivables_account_id: int = 3

    def cash_or_bank(self, payment_mode: str | None) -> int:
        # Cash -> cash account, every other mode lands in bank
        if (payment_mode or "").strip().lower() == "cash":
            return self.cash_account_id
        return self.bank_account_id

    def required_ids(self) -> List[int]:
        return [
            self.cash_account_id,
            self.bank_account_id,
            self.receivables_account_id,
        ]


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "HIMS Billing & Accounts")

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "hims_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "hims_billing")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # full URL wins over the MySQL parts (sqlite for local runs, etc.)
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or (
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}")

    # ---------- Hospital ----------
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")
    HOSPITAL_NAME: str = os.getenv("HOSPITAL_NAME", "Hope Hospital")
    HOSPITAL_ADDRESS: str = os.getenv("HOSPITAL_ADDRESS",
                                      "Nagpur, Maharashtra")
    DEFAULT_LOCATION_ID: int = int(os.getenv("DEFAULT_LOCATION_ID", "1"))

    # ---------- Tariff ----------
    DEFAULT_TARIFF_STANDARD_ID: int = int(
        os.getenv("DEFAULT_TARIFF_STANDARD_ID", "1"))
    # location ids that are NABH accredited (OR-ed with patient.hospital_type)
    NABH_LOCATION_IDS: List[int] = _split_ints(
        os.getenv("NABH_LOCATION_IDS", "2"))

    WARD_ICU_DEFAULT_RATE: Decimal = _dec("WARD_ICU_DEFAULT_RATE", "2000")
    WARD_DELUXE_DEFAULT_RATE: Decimal = _dec("WARD_DELUXE_DEFAULT_RATE",
                                             "1500")
    WARD_AC_DEFAULT_RATE: Decimal = _dec("WARD_AC_DEFAULT_RATE", "1200")
    WARD_NON_AC_DEFAULT_RATE: Decimal = _dec("WARD_NON_AC_DEFAULT_RATE",
                                             "800")

    DOCTOR_DEFAULT_DAILY_RATE: Decimal = _dec("DOCTOR_DEFAULT_DAILY_RATE",
                                              "500")
    DOCTOR_NABH_FALLBACK_RATE: Decimal = _dec("DOCTOR_NABH_FALLBACK_RATE",
                                              "800")
    DOCTOR_NON_NABH_FALLBACK_RATE: Decimal = _dec(
        "DOCTOR_NON_NABH_FALLBACK_RATE", "600")

    REGISTRATION_CHARGE_DEFAULT: Decimal = _dec("REGISTRATION_CHARGE_DEFAULT",
                                                "100")
    CONSULTANT_CHARGE_DEFAULT: Decimal = _dec("CONSULTANT_CHARGE_DEFAULT",
                                              "500")

    # anesthesia is billed as a share of surgery charges
    ANESTHESIA_RATE: Decimal = _dec("ANESTHESIA_RATE", "0.15")

    # ---------- Accounts ----------
    CASH_ACCOUNT_ID: int = int(os.getenv("CASH_ACCOUNT_ID", "1"))
    BANK_ACCOUNT_ID: int = int(os.getenv("BANK_ACCOUNT_ID", "2"))
    RECEIVABLES_ACCOUNT_ID: int = int(os.getenv("RECEIVABLES_ACCOUNT_ID", "3"))

    BALANCE_TOLERANCE: Decimal = _dec("BALANCE_TOLERANCE", "0.01")
    VOUCHER_NUMBER_RETRIES: int = int(os.getenv("VOUCHER_NUMBER_RETRIES", "3"))
    PENDING_VOUCHER_MAX_AGE_MINUTES: int = int(
        os.getenv("PENDING_VOUCHER_MAX_AGE_MINUTES", "15"))

    def account_conventions(self) -> AccountConventions:
        return AccountConventions(
            cash_account_id=self.CASH_ACCOUNT_ID,
            bank_account_id=self.BANK_ACCOUNT_ID,
            receivables_account_id=self.RECEIVABLES_ACCOUNT_ID,
        )


settings = Settings()
