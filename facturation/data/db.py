"""Engine and session construction for the invoice database."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from facturation.adapters.outbound.sqlalchemy_models import Base

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_URL = "sqlite:///data/facturation.db"


def resolve_url(url: str | None = None) -> str:
    """Pick the database URL and anchor relative SQLite files in the package.

    ``sqlite:///data/x.db`` lands in ``facturation/data/x.db`` whatever the
    working directory; absolute paths and in-memory databases are untouched.
    """
    brut = url or os.environ.get("DATABASE_URL") or DEFAULT_URL
    parsed = make_url(brut)
    fichier = parsed.database
    if parsed.get_backend_name() != "sqlite" or not fichier or fichier == ":memory:":
        return brut
    if os.path.isabs(fichier):
        os.makedirs(os.path.dirname(fichier), exist_ok=True)
        return brut
    fichier = os.path.join(_PACKAGE_DIR, fichier)
    os.makedirs(os.path.dirname(fichier), exist_ok=True)
    _, sep, requete = brut.partition("?")
    return f"{parsed.drivername}:///{fichier}{sep}{requete}"


def get_engine(url: str | None = None) -> Engine:
    db_url = resolve_url(url)
    connect_args = {}
    if db_url.startswith("sqlite"):
        # request handlers and the OCR background task run on other threads
        connect_args["check_same_thread"] = False
    logger.debug("Connexion base %s", make_url(db_url).render_as_string(hide_password=True))
    return create_engine(db_url, connect_args=connect_args)


def init_db(engine: Engine | None = None) -> Engine:
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine | None = None) -> sessionmaker:
    return sessionmaker(bind=engine or get_engine(), expire_on_commit=False)


@contextmanager
def session_scope(engine: Engine | None = None) -> Iterator[Session]:
    """Session committed on success and rolled back on error."""
    session = get_session_factory(engine)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
