# hims_billing/db/init_db.py
from __future__ import annotations

import argparse
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hims_billing.core.config import settings
from hims_billing.db.base import Base
from hims_billing.db.session import get_or_create_engine

# Import all models so metadata is complete
from hims_billing import models  # noqa: F401
from hims_billing.models.accounting import Account
from hims_billing.models.tariff import Configuration


def print_tables(engine: Engine) -> set:
    names = sorted(inspect(engine).get_table_names())
    print("Existing tables:", names)
    return set(names)


def seed_chart_of_accounts(db: Session) -> None:
    """
    Seed ONLY the missing conventional accounts; safe to run multiple times.
    Ids are fixed because receipts and payments post to them by id.
    """
    ACCOUNTS = [
        (settings.CASH_ACCOUNT_ID, "CASH", "Cash", "ASSET"),
        (settings.BANK_ACCOUNT_ID, "BANK", "Bank", "ASSET"),
        (settings.RECEIVABLES_ACCOUNT_ID, "AR-PATIENT", "Patient Receivables",
         "ASSET"),
    ]
    for account_id, code, name, account_type in ACCOUNTS:
        if db.get(Account, account_id) is None:
            db.add(
                Account(id=account_id,
                        code=code,
                        name=name,
                        account_type=account_type))


def seed_configurations(db: Session) -> None:
    DEFAULTS = [
        ("registration_charge", str(settings.REGISTRATION_CHARGE_DEFAULT)),
        ("consultant_charge", str(settings.CONSULTANT_CHARGE_DEFAULT)),
    ]
    for key, value in DEFAULTS:
        exists = (db.query(Configuration).filter(
            Configuration.key == key).first())
        if not exists:
            db.add(Configuration(key=key, value=value))


def seed_all(db: Session) -> None:
    seed_chart_of_accounts(db)
    seed_configurations(db)


def run(fresh: bool = False,
        seed: bool = True,
        db_uri: Optional[str] = None) -> None:
    engine = get_or_create_engine(db_uri)
    if fresh:
        print("WARNING: Dropping ALL tables (dev only) …")
        Base.metadata.drop_all(bind=engine)

    print("Creating all missing tables …")
    Base.metadata.create_all(bind=engine)
    print_tables(engine)

    if not seed:
        return
    try:
        with Session(engine) as db:
            seed_all(db)
            db.commit()
            print("Chart of accounts and configurations seeded.")
    except SQLAlchemyError as e:
        print("Seeding failed:", e)
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed accounts).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert the conventional accounts and configuration keys.",
    )
    parser.add_argument("--db-uri", default=None)
    args = parser.parse_args()
    run(fresh=args.fresh, seed=args.seed, db_uri=args.db_uri)
