"""The four server functions: matching, OCR, anomaly explanation, copilot.

Each answers ``{"success": false, "error": ...}`` on failure, with the
gateway's 429/402 kept for the AI endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from domain.assistant_ia import expliquer_anomalie, flux_copilote
from domain.exceptions import (
    CreditsInsuffisants,
    ErreurPasserelleIA,
    LimiteRequetesAtteinte,
    PasserelleNonConfiguree,
)
from domain.models import ResultatOcr, ResultatRapprochement
from domain.ports import CachePort, PasserelleIAPort, StockagePort
from facturation.adapters.inbound.dependances import (
    get_cache,
    get_config,
    get_passerelle,
    get_session,
    get_stockage,
)
from facturation.analytics.copilote import contexte_metier
from facturation.analytics.tableau_de_bord import CACHE_KEY
from facturation.data.factures import get_invoice
from facturation.services import matching_service, ocr_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])

MESSAGES_PILOTAGE = {
    LimiteRequetesAtteinte: "Limite de requêtes atteinte. Veuillez réessayer dans quelques instants.",
    CreditsInsuffisants: "Crédits IA insuffisants. Veuillez recharger votre compte.",
}


def _echec(session: Session, message: str, status_code: int = 500) -> JSONResponse:
    session.rollback()
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def rapprochement_json(resultat: ResultatRapprochement) -> dict:
    return {
        "matchScore": resultat.score,
        "matchStatus": resultat.statut.value,
        "supplierId": resultat.fournisseur_id,
        "purchaseOrderId": resultat.bon_commande_id,
        "deliveryNoteId": resultat.bon_livraison_id,
        "matchDetails": resultat.details,
        "anomalies": resultat.anomalies,
    }


def ocr_json(resultat: ResultatOcr) -> dict:
    return {
        "ocrFields": {nom: champ.to_dict() for nom, champ in resultat.champs.items()},
        "confidenceScore": resultat.confiance_moyenne,
    }


@router.post("/match-invoice")
def match_invoice(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
):
    facture_id = payload.get("invoiceId")
    if not facture_id:
        return _echec(session, "invoiceId is required")
    try:
        resultat = matching_service(session).rapprocher(facture_id)
    except Exception as exc:
        logger.exception("Rapprochement de la facture %s échoué", facture_id)
        return _echec(session, str(exc) or "Unknown error")
    cache.invalidate(CACHE_KEY)
    return {"success": True, "invoiceId": facture_id, **rapprochement_json(resultat)}


@router.post("/process-ocr")
def process_ocr(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    stockage: StockagePort = Depends(get_stockage),
    passerelle: PasserelleIAPort = Depends(get_passerelle),
    config: dict = Depends(get_config),
    cache: CachePort = Depends(get_cache),
):
    facture_id = payload.get("invoiceId")
    chemin = payload.get("filePath")
    if not facture_id or not chemin:
        return _echec(session, "invoiceId and filePath are required")
    try:
        resultat, rapprochement = ocr_service(
            session, stockage, passerelle, config.get("ia")
        ).traiter(facture_id, chemin)
    except Exception as exc:
        logger.exception("OCR de la facture %s échoué", facture_id)
        return _echec(session, str(exc) or "Unknown error")
    cache.invalidate(CACHE_KEY)
    reponse = {"success": True, "invoiceId": facture_id, **ocr_json(resultat)}
    if rapprochement is not None:
        reponse["matching"] = rapprochement_json(rapprochement)
    return reponse


def _facture_pour_prompt(session: Session, facture_id: int) -> dict:
    facture = get_invoice(session, facture_id)
    donnees = {c.name: getattr(facture, c.name) for c in facture.__table__.columns}
    donnees["nom_fournisseur"] = facture.fournisseur.nom if facture.fournisseur else None
    return donnees


@router.post("/explain-anomaly")
def explain_anomaly(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    passerelle: PasserelleIAPort = Depends(get_passerelle),
    config: dict = Depends(get_config),
):
    facture_id = payload.get("invoiceId")
    if not facture_id:
        return _echec(session, "invoiceId is required")
    try:
        explication = expliquer_anomalie(
            passerelle,
            _facture_pour_prompt(session, facture_id),
            config.get("ia", {}).get("modele_chat", "google/gemini-2.5-flash"),
        )
    except (LimiteRequetesAtteinte, CreditsInsuffisants) as exc:
        return _echec(session, str(exc), exc.status_code)
    except ErreurPasserelleIA as exc:
        return _echec(session, str(exc))
    except Exception as exc:
        logger.exception("Explication de la facture %s échouée", facture_id)
        return _echec(session, str(exc) or "Erreur inconnue")
    return {"explanation": explication}


@router.post("/ai-pilotage")
def ai_pilotage(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    passerelle: PasserelleIAPort = Depends(get_passerelle),
    config: dict = Depends(get_config),
):
    messages = payload.get("messages") or []
    try:
        flux = flux_copilote(
            passerelle,
            contexte_metier(session),
            messages,
            config.get("ia", {}).get("modele_chat", "google/gemini-2.5-flash"),
        )
    except (LimiteRequetesAtteinte, CreditsInsuffisants) as exc:
        return _echec(session, MESSAGES_PILOTAGE[type(exc)], exc.status_code)
    except PasserelleNonConfiguree as exc:
        return _echec(session, str(exc))
    except ErreurPasserelleIA:
        return _echec(session, "Erreur du service IA. Veuillez réessayer.")
    except Exception as exc:
        logger.exception("Copilote IA en erreur")
        return _echec(session, str(exc) or "Erreur inconnue")
    return StreamingResponse(flux, media_type="text/event-stream")
