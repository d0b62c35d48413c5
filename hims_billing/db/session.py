# hims_billing/db/session.py
from typing import Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from hims_billing.core.config import settings

_engines: Dict[str, Engine] = {}


def get_or_create_engine(db_uri: str | None = None) -> Engine:
    db_uri = db_uri or settings.SQLALCHEMY_DATABASE_URI
    eng = _engines.get(db_uri)
    if eng is None:
        kwargs = {"pool_pre_ping": True, "future": True}
        if not db_uri.startswith("sqlite"):
            kwargs.update(pool_recycle=280, pool_size=10, max_overflow=20)
        eng = create_engine(db_uri, **kwargs)
        _engines[db_uri] = eng
    return eng


def create_session(db_uri: str | None = None) -> Session:
    """
    Return a new Session bound to the given DB URI (settings default).
    """
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=get_or_create_engine(db_uri),
        future=True,
    )
    return SessionLocal()


def get_db() -> Iterator[Session]:
    db = create_session()
    try:
        yield db
    finally:
        db.close()
