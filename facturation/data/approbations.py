"""Approval administration: rules, user roles, delegations and the approval queue."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.approval_rules import (
    niveaux_autorises,
    peut_approuver,
    roles_effectifs,
    valider_delegation,
    valider_regle,
)
from domain.exceptions import ErreurValidation
from domain.models import Delegation as DomainDelegation, Role, StatutFacture
from facturation.adapters.outbound.sqlalchemy_models import (
    Delegation,
    Facture,
    RegleApprobation,
    RoleUtilisateur,
)
from facturation.adapters.outbound.sqlalchemy_repos import (
    SqlAlchemyDelegationRepository,
    SqlAlchemyHistoriqueApprobationRepository,
    SqlAlchemyRegleApprobationRepository,
)

logger = logging.getLogger(__name__)

LIBELLES_NIVEAUX = {1: "Niveau 1 - Comptable", 2: "Niveau 2 - DAF", 3: "Niveau 3 - DG"}

_CHAMPS_REGLE = (
    "nom", "description", "montant_min", "montant_max", "fournisseur_critique",
    "niveaux_requis", "role_niveau_1", "role_niveau_2", "role_niveau_3", "priorite", "active",
)

_TYPES_REGLE = {
    "nom": str,
    "description": str,
    "montant_min": float,
    "montant_max": float,
    "fournisseur_critique": bool,
    "niveaux_requis": int,
    "priorite": int,
    "active": bool,
}
_NON_NULS = ("nom", "fournisseur_critique", "niveaux_requis", "priorite", "active")


def libelle_niveau(niveau: int) -> str:
    return LIBELLES_NIVEAUX.get(niveau, f"Niveau {niveau}")


# ── Rules ───────────────────────────────────────────────────────────────


def list_rules(session: Session, include_inactive: bool = False) -> list[RegleApprobation]:
    stmt = select(RegleApprobation).order_by(RegleApprobation.priorite.desc())
    if not include_inactive:
        stmt = stmt.where(RegleApprobation.active.is_(True))
    return list(session.scalars(stmt))


def _rule_value(cle: str, valeur):
    """Checked value of one rule field as received from an untyped body."""
    if valeur is None:
        if cle in _NON_NULS:
            raise ErreurValidation(f"Le champ {cle} est obligatoire")
        return None
    if cle.startswith("role_niveau_"):
        try:
            return Role(valeur).value
        except (TypeError, ValueError):
            raise ErreurValidation(f"Rôle inconnu: {valeur}") from None
    attendu = _TYPES_REGLE[cle]
    if attendu is float and isinstance(valeur, (int, float)) and not isinstance(valeur, bool):
        return float(valeur)
    if attendu is int and isinstance(valeur, bool):
        raise ErreurValidation(f"Valeur invalide pour {cle}: {valeur!r}")
    if attendu is float or not isinstance(valeur, attendu):
        raise ErreurValidation(f"Valeur invalide pour {cle}: {valeur!r}")
    return valeur


def _apply_rule_fields(regle: RegleApprobation, champs: dict) -> None:
    for cle, valeur in champs.items():
        if cle not in _CHAMPS_REGLE:
            raise ErreurValidation(f"Champ inconnu: {cle}")
        setattr(regle, cle, _rule_value(cle, valeur))
    # Levels above niveaux_requis keep no role
    for niveau in range(regle.niveaux_requis + 1, 4):
        setattr(regle, f"role_niveau_{niveau}", None)
    valider_regle(SqlAlchemyRegleApprobationRepository.to_domain(regle))


def create_rule(session: Session, **champs) -> RegleApprobation:
    regle = RegleApprobation(
        montant_min=0, fournisseur_critique=False, niveaux_requis=1, priorite=0, active=True
    )
    _apply_rule_fields(regle, champs)
    session.add(regle)
    session.flush()
    logger.info("Règle d'approbation créée: %s", regle.nom)
    return regle


def update_rule(session: Session, regle_id: int, **champs) -> RegleApprobation:
    regle = session.get(RegleApprobation, regle_id)
    if regle is None:
        raise ErreurValidation(f"Règle introuvable: {regle_id}")
    _apply_rule_fields(regle, champs)
    session.flush()
    return regle


def delete_rule(session: Session, regle_id: int) -> None:
    regle = session.get(RegleApprobation, regle_id)
    if regle is not None:
        session.delete(regle)
        session.flush()


# ── Roles ───────────────────────────────────────────────────────────────


def get_user_roles(session: Session, utilisateur_id: str) -> list[Role]:
    stmt = select(RoleUtilisateur.role).where(RoleUtilisateur.utilisateur_id == utilisateur_id)
    return [Role(r) for r in session.scalars(stmt)]


def set_user_roles(session: Session, utilisateur_id: str, roles: list[Role]) -> None:
    """Replace the roles of a user."""
    existants = session.scalars(
        select(RoleUtilisateur).where(RoleUtilisateur.utilisateur_id == utilisateur_id)
    )
    for orm in existants:
        session.delete(orm)
    session.flush()
    for role in dict.fromkeys(roles):
        session.add(RoleUtilisateur(utilisateur_id=utilisateur_id, role=Role(role).value))
    session.flush()


def effective_roles(session: Session, utilisateur_id: str, jour: date | None = None) -> set[Role]:
    """Own roles plus the roles delegated to the user on *jour*."""
    jour = jour or date.today()
    recues = SqlAlchemyDelegationRepository(session).lister_recues(utilisateur_id)
    delegants = {d.delegant_id for d in recues}
    return roles_effectifs(
        get_user_roles(session, utilisateur_id),
        recues,
        {d: get_user_roles(session, d) for d in delegants},
        jour,
    )


# ── Delegations ─────────────────────────────────────────────────────────


def create_delegation(
    session: Session,
    delegant_id: str,
    delegataire_id: str,
    date_debut: date,
    date_fin: date,
    motif: str | None = None,
) -> Delegation:
    valider_delegation(DomainDelegation(
        delegant_id=delegant_id,
        delegataire_id=delegataire_id,
        date_debut=date_debut,
        date_fin=date_fin,
    ))
    delegation = Delegation(
        delegant_id=delegant_id,
        delegataire_id=delegataire_id,
        date_debut=date_debut,
        date_fin=date_fin,
        motif=motif,
        active=True,
    )
    session.add(delegation)
    session.flush()
    return delegation


def list_delegations(session: Session, delegant_id: str | None = None) -> list[Delegation]:
    stmt = select(Delegation).order_by(Delegation.cree_le.desc(), Delegation.id.desc())
    if delegant_id is not None:
        stmt = stmt.where(Delegation.delegant_id == delegant_id)
    return list(session.scalars(stmt))


def deactivate_delegation(session: Session, delegation_id: int) -> None:
    delegation = session.get(Delegation, delegation_id)
    if delegation is not None:
        delegation.active = False
        session.flush()


# ── Queue ───────────────────────────────────────────────────────────────


def approval_queue(session: Session, utilisateur_id: str, jour: date | None = None) -> dict[int, list[Facture]]:
    """Invoices awaiting approval at a level the user may sign, grouped by level."""
    niveaux = niveaux_autorises(effective_roles(session, utilisateur_id, jour))
    if not niveaux:
        return {}
    stmt = (
        select(Facture)
        .where(Facture.statut == StatutFacture.A_APPROUVER.value)
        .order_by(Facture.cree_le.desc())
    )
    file: dict[int, list[Facture]] = {}
    for facture in session.scalars(stmt):
        niveau = facture.niveau_approbation_courant or 1
        if niveau in niveaux:
            file.setdefault(niveau, []).append(facture)
    return file


def can_approve(session: Session, utilisateur_id: str, facture_id: int, jour: date | None = None) -> bool:
    historique = SqlAlchemyHistoriqueApprobationRepository(session).lister(facture_id)
    return peut_approuver(effective_roles(session, utilisateur_id, jour), historique)
