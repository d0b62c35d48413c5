# hims_billing/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All billing / accounting / IPD source tables inherit from this."""
    pass
