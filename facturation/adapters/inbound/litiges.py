"""Supplier disputes and their communications."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from domain.models import CategorieLitige, PrioriteLitige, StatutLitige, TypeCommunication
from domain.ports import CachePort
from facturation.adapters.inbound.dependances import get_cache, get_session, utilisateur_optionnel
from facturation.adapters.inbound.serialisation import ligne, lignes
from facturation.analytics.tableau_de_bord import CACHE_KEY
from facturation.data import litiges

router = APIRouter(prefix="/litiges", tags=["litiges"])


class DemandeLitige(BaseModel):
    facture_id: int
    description: str
    categorie: CategorieLitige = CategorieLitige.OTHER
    priorite: PrioriteLitige = PrioriteLitige.MEDIUM
    attribue_a: str | None = None


class MiseAJourLitige(BaseModel):
    statut: StatutLitige | None = None
    priorite: PrioriteLitige | None = None
    attribue_a: str | None = None
    resolution: str | None = None


class DemandeCommunication(BaseModel):
    type_communication: TypeCommunication
    contenu: str
    modele_email: str | None = None
    destinataires: list[str] | None = None


class DemandeModele(BaseModel):
    invoiceNumber: str | None = None
    amount: str | None = None
    expectedAmount: str | None = None
    discrepancy: str | None = None
    description: str | None = None


@router.get("")
def lister(
    statut: StatutLitige | None = None,
    facture_id: int | None = None,
    session: Session = Depends(get_session),
):
    return lignes(litiges.list_disputes(session, statut, facture_id))


@router.post("", status_code=201)
def creer(
    demande: DemandeLitige,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    litige = litiges.create_dispute(
        session,
        demande.facture_id,
        demande.description,
        categorie=demande.categorie,
        priorite=demande.priorite,
        cree_par=utilisateur,
        attribue_a=demande.attribue_a,
    )
    cache.invalidate(CACHE_KEY)
    return ligne(litige)


@router.get("/{litige_id}")
def detail(litige_id: int, session: Session = Depends(get_session)):
    return {
        **ligne(litiges.get_dispute(session, litige_id)),
        "communications": lignes(litiges.list_communications(session, litige_id)),
    }


@router.patch("/{litige_id}")
def modifier(
    litige_id: int,
    demande: MiseAJourLitige,
    session: Session = Depends(get_session),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    return ligne(litiges.update_dispute(
        session,
        litige_id,
        utilisateur,
        statut=demande.statut,
        priorite=demande.priorite,
        attribue_a=demande.attribue_a,
        resolution=demande.resolution,
    ))


@router.post("/{litige_id}/communications", status_code=201)
def communiquer(
    litige_id: int,
    demande: DemandeCommunication,
    session: Session = Depends(get_session),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    return ligne(litiges.add_communication(
        session,
        litige_id,
        demande.type_communication,
        demande.contenu,
        cree_par=utilisateur,
        modele_email=demande.modele_email,
        destinataires=demande.destinataires,
    ))


@router.post("/modeles/{categorie}")
def modele_email(categorie: CategorieLitige, demande: DemandeModele):
    return litiges.render_email_template(categorie, **demande.model_dump())
