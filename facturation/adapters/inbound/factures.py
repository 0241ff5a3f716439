"""Invoice ingestion, workflow, exceptions, accounting export and dashboard."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from domain.models import StatutFacture
from domain.ports import CachePort, StockagePort
from domain.workflow import ACTIONS_EXCEPTION, transitions_disponibles
from facturation.adapters.inbound.dependances import (
    get_cache,
    get_config,
    get_session,
    get_stockage,
    utilisateur_optionnel,
)
from facturation.adapters.inbound.serialisation import ligne, lignes
from facturation.analytics import qualite_ocr
from facturation.analytics.tableau_de_bord import CACHE_KEY, statistiques_en_cache
from facturation.data import export, factures
from facturation.data.upload_pipeline import ALLOWED_TYPES, ingest_upload, list_import_logs
from facturation.services import ocr_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["factures"])


class DemandeTransition(BaseModel):
    statut: StatutFacture
    motif: str | None = None


class DemandeResolution(BaseModel):
    action: str
    commentaire: str | None = None


class DemandeExport(BaseModel):
    champs: list[str] | None = None
    separateur: str = ";"
    format_date: str = "iso"
    entete: bool = True
    bom: bool = False


class DemandeMarquage(BaseModel):
    facture_ids: list[int]


def traiter_ocr(app_state, facture_id: int, chemin: str) -> None:
    """Background OCR of a freshly uploaded invoice, in its own session."""
    session = app_state.session_factory()
    try:
        ocr_service(
            session, app_state.stockage, app_state.passerelle, app_state.config.get("ia")
        ).traiter(facture_id, chemin)
        session.commit()
        app_state.cache.invalidate(CACHE_KEY)
    except Exception:
        session.rollback()
        logger.exception("OCR en tâche de fond échoué pour la facture %s", facture_id)
    finally:
        session.close()


# ── Ingestion ───────────────────────────────────────────────────────────


@router.post("/factures/upload", status_code=201)
async def upload(
    request: Request,
    background: BackgroundTasks,
    fichier: UploadFile = File(...),
    session: Session = Depends(get_session),
    stockage: StockagePort = Depends(get_stockage),
    config: dict = Depends(get_config),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    contenu = await fichier.read()
    ingestion = config.get("ingestion", {})
    resultat = ingest_upload(
        session, stockage, contenu, fichier.filename or "facture.pdf",
        fichier.content_type, utilisateur,
        max_size=ingestion.get("taille_max_mo", 20) * 1024 * 1024,
        allowed_types=tuple(ingestion.get("types_acceptes") or ALLOWED_TYPES),
    )
    # Committed before the OCR task opens its own session
    session.commit()
    if resultat.doublon:
        raise HTTPException(409, resultat.erreur)
    if not resultat.succes:
        raise HTTPException(400, resultat.erreur)
    cache.invalidate(CACHE_KEY)
    background.add_task(traiter_ocr, request.app.state, resultat.facture_id, resultat.chemin)
    return {"success": True, "invoiceId": resultat.facture_id, "filePath": resultat.chemin}


@router.get("/imports")
def journal_imports(limit: int = 50, session: Session = Depends(get_session)):
    return lignes(list_import_logs(session, limit))


# ── Invoices and workflow ───────────────────────────────────────────────


@router.get("/factures")
def lister(
    statut: StatutFacture | None = None,
    fournisseur_id: int | None = None,
    session: Session = Depends(get_session),
):
    return lignes(factures.list_invoices(session, statut, fournisseur_id))


@router.get("/factures/exceptions")
def exceptions(session: Session = Depends(get_session)):
    return lignes(factures.list_exceptions(session))


@router.get("/factures/{facture_id}")
def detail(facture_id: int, session: Session = Depends(get_session)):
    facture = factures.get_invoice(session, facture_id)
    return {
        **ligne(facture),
        "transitions": [
            {"statut": t.vers.value, "libelle": t.libelle, "motif_requis": t.motif_requis}
            for t in transitions_disponibles(StatutFacture(facture.statut))
        ],
    }


@router.post("/factures/{facture_id}/statut")
def changer_statut(
    facture_id: int,
    demande: DemandeTransition,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    facture = factures.change_status(session, facture_id, demande.statut, utilisateur, demande.motif)
    cache.invalidate(CACHE_KEY)
    return ligne(facture)


@router.post("/factures/{facture_id}/exception")
def resoudre_exception(
    facture_id: int,
    demande: DemandeResolution,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    if demande.action not in ACTIONS_EXCEPTION:
        raise HTTPException(400, f"Action inconnue: {demande.action}")
    facture = factures.resolve_exception(
        session, facture_id, demande.action, utilisateur, demande.commentaire
    )
    cache.invalidate(CACHE_KEY)
    return ligne(facture)


# ── Accounting export ───────────────────────────────────────────────────


@router.get("/export/factures")
def factures_a_exporter(session: Session = Depends(get_session)):
    return lignes(export.invoices_for_export(session))


@router.post("/export/comptable")
def export_comptable(demande: DemandeExport, session: Session = Depends(get_session)):
    texte = export.generate_csv(
        export.invoices_for_export(session),
        champs=demande.champs,
        separateur=demande.separateur,
        format_date_export=demande.format_date,
        entete=demande.entete,
        bom=demande.bom,
    )
    return Response(
        content=texte,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="export_comptable.csv"'},
    )


@router.post("/export/marquer")
def marquer_exportees(
    demande: DemandeMarquage,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    exportees = export.mark_exported(session, demande.facture_ids, utilisateur)
    cache.invalidate(CACHE_KEY)
    return {"success": True, "count": len(exportees)}


# ── Dashboard ───────────────────────────────────────────────────────────


@router.get("/tableau-de-bord")
def tableau_de_bord(
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    config: dict = Depends(get_config),
):
    return statistiques_en_cache(session, cache, config.get("cache", {}).get("ttl", 300))


@router.get("/qualite-ocr")
def qualite(session: Session = Depends(get_session), config: dict = Depends(get_config)):
    seuil = config.get("qualite_ocr", {}).get(
        "seuil_confiance_faible", qualite_ocr.SEUIL_CONFIANCE_FAIBLE
    )
    par_fournisseur = qualite_ocr.statistiques_par_fournisseur(session, seuil)
    return {
        "global": qualite_ocr.statistiques_globales(session, seuil),
        "par_fournisseur": par_fournisseur.to_dict(orient="records"),
    }
