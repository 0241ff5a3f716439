"""FastAPI application: composition root of the back office.

Run with ``uvicorn facturation.app:create_app --factory``.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain.exceptions import (
    AucuneRegleApprobation,
    ErreurMetier,
    ErreurPasserelleIA,
    ErreurValidation,
    FactureIntrouvable,
    NonAuthentifie,
    TransitionInvalide,
)
from domain.ports import CachePort, PasserelleIAPort, StockagePort
from facturation.adapters.inbound import (
    approbations,
    banque,
    factures,
    functions,
    litiges,
    referentiel,
)
from facturation.adapters.outbound.ai_gateway import RequestsAIGateway
from facturation.adapters.outbound.file_storage import LocalFileStorage
from facturation.adapters.outbound.redis_cache import build_cache
from facturation.data.db import get_engine, get_session_factory, init_db
from facturation.settings import load_config

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

_STATUTS_ERREUR = (
    (FactureIntrouvable, 404),
    (NonAuthentifie, 401),
    (TransitionInvalide, 409),
    (AucuneRegleApprobation, 422),
    (ErreurValidation, 400),
)


def statut_http(exc: ErreurMetier) -> int:
    if isinstance(exc, ErreurPasserelleIA):
        return exc.status_code
    for classe, statut in _STATUTS_ERREUR:
        if isinstance(exc, classe):
            return statut
    return 500


def _dossier_stockage(dossier: str) -> str:
    return dossier if os.path.isabs(dossier) else os.path.join(_PACKAGE_DIR, dossier)


def create_app(
    config: dict | None = None,
    session_factory=None,
    passerelle: PasserelleIAPort | None = None,
    stockage: StockagePort | None = None,
    cache: CachePort | None = None,
) -> FastAPI:
    """Build the application; collaborators default to the configured adapters."""
    config = config if config is not None else load_config()

    if session_factory is None:
        engine = init_db(get_engine(config.get("database", {}).get("url")))
        session_factory = get_session_factory(engine)
    ia = config.get("ia", {})
    if passerelle is None:
        passerelle = RequestsAIGateway(
            ia.get("gateway_url"), ia.get("api_key"), timeout=ia.get("timeout", 120)
        )
    if stockage is None:
        stockage = LocalFileStorage(
            _dossier_stockage(config.get("stockage", {}).get("dossier", "data/factures"))
        )
    if cache is None:
        cache = build_cache(config.get("cache", {}).get("redis_url"))

    app = FastAPI(title="Facturation fournisseurs", version="0.1.0")
    app.state.config = config
    app.state.session_factory = session_factory
    app.state.passerelle = passerelle
    app.state.stockage = stockage
    app.state.cache = cache

    @app.exception_handler(ErreurMetier)
    async def erreur_metier(request: Request, exc: ErreurMetier):
        statut = statut_http(exc)
        if statut >= 500:
            logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=statut)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    for module in (functions, approbations, factures, litiges, banque, referentiel):
        app.include_router(module.router)
    return app
