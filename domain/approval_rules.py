"""Domain approval rules — pure functions, zero external dependencies.

Only stdlib and domain.models imports allowed.
"""

from __future__ import annotations

from datetime import date

from domain.exceptions import AucuneRegleApprobation, ErreurValidation, TransitionInvalide
from domain.models import (
    Delegation,
    EtapeApprobation,
    RegleApprobation,
    ResultatApprobation,
    Role,
    StatutEtape,
    StatutFacture,
)

# Levels a role may sign in the approval queue.
NIVEAUX_PAR_ROLE: dict[Role, list[int]] = {
    Role.COMPTABLE: [1],
    Role.DAF: [1, 2],
    Role.DG: [1, 2, 3],
    Role.ADMIN: [1, 2, 3],
    Role.AUDITEUR: [],
}

NIVEAUX_MAX = 3


def regle_applicable(regle: RegleApprobation, montant: float, fournisseur_critique: bool) -> bool:
    """Amount in [min, max) and critical-supplier flag satisfied."""
    if montant < (regle.montant_min or 0):
        return False
    if regle.montant_max is not None and montant >= regle.montant_max:
        return False
    return not regle.fournisseur_critique or fournisseur_critique


def selectionner_regle(
    regles: list[RegleApprobation], montant: float, fournisseur_critique: bool
) -> RegleApprobation:
    """Return the first applicable active rule in descending priority order.

    Raises:
        AucuneRegleApprobation: if no rule applies.
    """
    actives = sorted(
        (r for r in regles if r.active), key=lambda r: r.priorite, reverse=True
    )
    for regle in actives:
        if regle_applicable(regle, montant, fournisseur_critique):
            return regle
    raise AucuneRegleApprobation(montant, fournisseur_critique)


def construire_etapes(regle: RegleApprobation, facture_id: int) -> list[EtapeApprobation]:
    """One pending step per required level; levels without a role are skipped."""
    etapes = []
    for niveau in range(1, regle.niveaux_requis + 1):
        role = regle.role_pour_niveau(niveau)
        if role is None:
            continue
        etapes.append(EtapeApprobation(facture_id=facture_id, niveau=niveau, role_requis=role))
    return etapes


def etat_apres_approbation(niveau: int, niveaux_requis: int | None) -> ResultatApprobation:
    """Next level and status once *niveau* is approved."""
    est_dernier = niveau >= (niveaux_requis or 1)
    return ResultatApprobation(
        niveau=niveau,
        est_dernier=est_dernier,
        niveau_courant=niveau if est_dernier else niveau + 1,
        statut=(
            StatutFacture.PRETE_COMPTABILISATION if est_dernier else StatutFacture.A_APPROUVER
        ),
    )


def valider_regle(regle: RegleApprobation) -> None:
    """Check the settings of an approval rule before it is saved."""
    if not regle.nom or not regle.nom.strip():
        raise ErreurValidation("Le nom de la règle est obligatoire")
    if not 1 <= regle.niveaux_requis <= NIVEAUX_MAX:
        raise ErreurValidation(f"Le nombre de niveaux doit être compris entre 1 et {NIVEAUX_MAX}")
    for niveau in range(1, regle.niveaux_requis + 1):
        if regle.role_pour_niveau(niveau) is None:
            raise ErreurValidation(f"Rôle manquant pour le niveau {niveau}")
    if regle.montant_max is not None and regle.montant_max <= (regle.montant_min or 0):
        raise ErreurValidation("Le montant maximum doit être supérieur au montant minimum")


# ── Roles and delegations ───────────────────────────────────────────────


def delegation_en_cours(delegation: Delegation, jour: date) -> bool:
    return delegation.active and delegation.date_debut <= jour <= delegation.date_fin


def roles_effectifs(
    roles: list[Role],
    delegations_recues: list[Delegation],
    roles_par_utilisateur: dict[str, list[Role]],
    jour: date,
) -> set[Role]:
    """Own roles plus those of every delegator with a delegation running on *jour*."""
    effectifs = set(roles)
    for delegation in delegations_recues:
        if delegation_en_cours(delegation, jour):
            effectifs.update(roles_par_utilisateur.get(delegation.delegant_id, []))
    return effectifs


def niveaux_autorises(roles) -> set[int]:
    niveaux: set[int] = set()
    for role in roles:
        niveaux.update(NIVEAUX_PAR_ROLE.get(role, []))
    return niveaux


def etape_en_attente(historique: list[EtapeApprobation]) -> EtapeApprobation | None:
    for etape in sorted(historique, key=lambda e: e.niveau):
        if etape.statut is StatutEtape.PENDING:
            return etape
    return None


def verifier_niveau_en_attente(historique: list[EtapeApprobation], niveau: int) -> EtapeApprobation:
    """Levels are signed in order: only the first pending one can be decided."""
    etape = etape_en_attente(historique)
    if etape is None:
        raise TransitionInvalide("Aucun niveau d'approbation en attente")
    if etape.niveau != niveau:
        raise TransitionInvalide(
            f"Niveau {niveau} non décidable: le niveau {etape.niveau} est en attente"
        )
    return etape


def peut_approuver(roles, historique: list[EtapeApprobation]) -> bool:
    """True when the first pending level requires one of *roles*."""
    etape = etape_en_attente(historique)
    return etape is not None and etape.role_requis in set(roles)


def valider_delegation(delegation: Delegation) -> None:
    if delegation.delegant_id == delegation.delegataire_id:
        raise ErreurValidation("Impossible de se déléguer à soi-même")
    if delegation.date_fin < delegation.date_debut:
        raise ErreurValidation("La date de fin doit être postérieure à la date de début")
