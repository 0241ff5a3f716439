"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from domain.ports import CachePort, PasserelleIAPort, StockagePort


def get_session(request: Request) -> Iterator[Session]:
    """One session per request, committed once when the handler succeeds."""
    session = request.app.state.session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_config(request: Request) -> dict:
    return request.app.state.config


def get_passerelle(request: Request) -> PasserelleIAPort:
    return request.app.state.passerelle


def get_stockage(request: Request) -> StockagePort:
    return request.app.state.stockage


def get_cache(request: Request) -> CachePort:
    return request.app.state.cache


def utilisateur_optionnel(x_user_id: str | None = Header(default=None)) -> str | None:
    """Caller id forwarded by the front end; authentication happens upstream."""
    return x_user_id or None


def utilisateur_requis(utilisateur: str | None = Depends(utilisateur_optionnel)) -> str:
    if not utilisateur:
        raise HTTPException(401, "Non authentifié")
    return utilisateur
