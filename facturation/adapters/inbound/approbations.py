"""Approval workflow, rules, user roles and delegations."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from domain.models import Role
from domain.ports import CachePort
from facturation.adapters.inbound.dependances import (
    get_cache,
    get_session,
    utilisateur_optionnel,
    utilisateur_requis,
)
from facturation.adapters.inbound.serialisation import ligne, lignes
from facturation.analytics.tableau_de_bord import CACHE_KEY
from facturation.data import approbations as admin
from facturation.services import approval_service

router = APIRouter(tags=["approbations"])


class DemandeInitialisation(BaseModel):
    montant: float
    fournisseur_critique: bool = False


class DemandeApprobation(BaseModel):
    niveau: int
    commentaire: str | None = None


class DemandeRejet(BaseModel):
    niveau: int
    motif: str


class DemandeRoles(BaseModel):
    roles: list[Role]


class DemandeDelegation(BaseModel):
    delegataire_id: str
    date_debut: date
    date_fin: date
    motif: str | None = None


# ── Invoice approval ────────────────────────────────────────────────────


@router.post("/factures/{facture_id}/approbation")
def initialiser(
    facture_id: int,
    demande: DemandeInitialisation,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    init = approval_service(session).initialiser(
        facture_id, demande.montant, demande.fournisseur_critique, utilisateur
    )
    cache.invalidate(CACHE_KEY)
    return init


def _verifier_droits(session: Session, utilisateur: str | None, facture_id: int) -> None:
    if utilisateur and not admin.can_approve(session, utilisateur, facture_id):
        raise HTTPException(403, "Vous n'avez pas le rôle requis pour ce niveau d'approbation")


@router.post("/factures/{facture_id}/approbation/approuver")
def approuver(
    facture_id: int,
    demande: DemandeApprobation,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    _verifier_droits(session, utilisateur, facture_id)
    resultat = approval_service(session).approuver(
        facture_id, demande.niveau, utilisateur, demande.commentaire
    )
    cache.invalidate(CACHE_KEY)
    return resultat


@router.post("/factures/{facture_id}/approbation/rejeter")
def rejeter(
    facture_id: int,
    demande: DemandeRejet,
    session: Session = Depends(get_session),
    cache: CachePort = Depends(get_cache),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    _verifier_droits(session, utilisateur, facture_id)
    approval_service(session).rejeter(facture_id, demande.niveau, utilisateur, demande.motif)
    cache.invalidate(CACHE_KEY)
    return {"success": True}


@router.get("/factures/{facture_id}/approbation/historique")
def historique(facture_id: int, session: Session = Depends(get_session)):
    return approval_service(session).historique(facture_id)


@router.get("/approbations/file")
def file_approbation(
    session: Session = Depends(get_session),
    utilisateur: str = Depends(utilisateur_requis),
):
    file = admin.approval_queue(session, utilisateur)
    return [
        {"niveau": niveau, "libelle": admin.libelle_niveau(niveau), "factures": lignes(factures)}
        for niveau, factures in sorted(file.items())
    ]


# ── Rules ───────────────────────────────────────────────────────────────


@router.get("/regles-approbation")
def lister_regles(inactives: bool = False, session: Session = Depends(get_session)):
    return lignes(admin.list_rules(session, include_inactive=inactives))


@router.post("/regles-approbation", status_code=201)
def creer_regle(champs: dict, session: Session = Depends(get_session)):
    return ligne(admin.create_rule(session, **champs))


@router.patch("/regles-approbation/{regle_id}")
def modifier_regle(regle_id: int, champs: dict, session: Session = Depends(get_session)):
    return ligne(admin.update_rule(session, regle_id, **champs))


@router.delete("/regles-approbation/{regle_id}", status_code=204)
def supprimer_regle(regle_id: int, session: Session = Depends(get_session)):
    admin.delete_rule(session, regle_id)


# ── Roles and delegations ───────────────────────────────────────────────


@router.get("/utilisateurs/{utilisateur_id}/roles")
def roles(utilisateur_id: str, session: Session = Depends(get_session)):
    return {
        "roles": admin.get_user_roles(session, utilisateur_id),
        "effectifs": sorted(r.value for r in admin.effective_roles(session, utilisateur_id)),
    }


@router.put("/utilisateurs/{utilisateur_id}/roles")
def definir_roles(utilisateur_id: str, demande: DemandeRoles, session: Session = Depends(get_session)):
    admin.set_user_roles(session, utilisateur_id, demande.roles)
    return {"roles": admin.get_user_roles(session, utilisateur_id)}


@router.get("/delegations")
def lister_delegations(
    session: Session = Depends(get_session),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    return lignes(admin.list_delegations(session, utilisateur))


@router.post("/delegations", status_code=201)
def creer_delegation(
    demande: DemandeDelegation,
    session: Session = Depends(get_session),
    utilisateur: str = Depends(utilisateur_requis),
):
    return ligne(admin.create_delegation(
        session, utilisateur, demande.delegataire_id, demande.date_debut, demande.date_fin,
        demande.motif,
    ))


@router.post("/delegations/{delegation_id}/desactiver")
def desactiver_delegation(delegation_id: int, session: Session = Depends(get_session)):
    admin.deactivate_delegation(session, delegation_id)
    return {"success": True}
