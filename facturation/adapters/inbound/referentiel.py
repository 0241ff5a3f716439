"""Supplier and purchase order master data: CSV imports, 360 view, risk."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from facturation.adapters.inbound.dependances import get_session
from facturation.adapters.inbound.serialisation import ligne, lignes
from facturation.adapters.outbound.sqlalchemy_models import BonCommande, Fournisseur
from facturation.analytics.fournisseurs import recalculer_risque, vue_360
from facturation.data import imports

router = APIRouter(tags=["referentiel"])


@router.get("/fournisseurs")
def fournisseurs(session: Session = Depends(get_session)):
    return lignes(session.scalars(select(Fournisseur).order_by(Fournisseur.nom)))


@router.post("/fournisseurs/import")
async def importer_fournisseurs(
    fichier: UploadFile = File(...),
    apercu: bool = False,
    session: Session = Depends(get_session),
):
    """Import suppliers from CSV; ``apercu=true`` only returns the parsed rows."""
    resultat = imports.parse_suppliers_csv(await fichier.read())
    if apercu or resultat.erreurs:
        return {"success": not resultat.erreurs, "lignes": resultat.lignes, "erreurs": resultat.erreurs}
    enregistres = imports.save_suppliers(session, resultat.lignes)
    return {"success": True, "count": len(enregistres), "erreurs": []}


@router.get("/fournisseurs/{fournisseur_id}")
def fournisseur_360(fournisseur_id: int, session: Session = Depends(get_session)):
    vue = vue_360(session, fournisseur_id)
    return {
        "fournisseur": ligne(vue["fournisseur"]),
        "factures": lignes(vue["factures"]),
        "litiges": lignes(vue["litiges"]),
        "bons_commande": lignes(vue["bons_commande"]),
        "stats": vue["stats"],
    }


@router.post("/fournisseurs/{fournisseur_id}/risque")
def risque(fournisseur_id: int, session: Session = Depends(get_session)):
    return {"score_risque": recalculer_risque(session, fournisseur_id)}


@router.get("/bons-commande")
def bons_commande(fournisseur_id: int | None = None, session: Session = Depends(get_session)):
    stmt = select(BonCommande).order_by(BonCommande.date_commande.desc())
    if fournisseur_id is not None:
        stmt = stmt.where(BonCommande.fournisseur_id == fournisseur_id)
    return lignes(session.scalars(stmt))


@router.post("/bons-commande/import")
async def importer_bons_commande(
    fichier: UploadFile = File(...),
    session: Session = Depends(get_session),
):
    bons = imports.parse_purchase_orders_csv(await fichier.read())
    enregistres = imports.save_purchase_orders(session, bons)
    return {"success": True, "count": len(enregistres)}
