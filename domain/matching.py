"""Domain matching rules — pure functions, zero external dependencies.

Only stdlib and domain.models imports allowed.
"""

from __future__ import annotations

import math

from domain.models import StatutFacture, StatutRapprochement

POIDS = {
    "po": 0.4,
    "bl": 0.25,
    "supplier": 0.2,
    "amount": 0.15,
}

SEUIL_AUTOMATIQUE = 0.85
SEUIL_PROBABLE = 0.6
SEUIL_INCERTAIN = 0.3

# Partial scores
SCORE_EXACT = 1.0
SCORE_APPROCHANT = 0.7
SCORE_VIA_BL = 0.8
SCORE_FOURNISSEUR_NOM = 0.9
SCORE_FOURNISSEUR_PARTIEL = 0.7
SCORE_FOURNISSEUR_CREE = 0.6

# Anomaly tags
ANOMALIE_FOURNISSEUR_BC = "supplier_mismatch_with_po"
ANOMALIE_BC_BL = "po_mismatch_between_invoice_and_bl"
ANOMALIE_SANS_REFERENCE = "no_reference_documents"


def ecart_montant_pct(montant_facture: float, montant_bc: float) -> float:
    """Relative difference to the purchase order amount, in percent."""
    return abs(montant_facture - montant_bc) / montant_bc * 100


def score_montant(ecart_pct: float) -> float:
    if ecart_pct <= 1:
        return 1.0
    if ecart_pct <= 5:
        return 0.8
    if ecart_pct <= 10:
        return 0.5
    return 0.2


def anomalie_montant(ecart_pct: float) -> str | None:
    """Tag for an amount difference above 5 %, e.g. ``amount_difference_12%``.

    Halves round up: 12.5 % is tagged ``amount_difference_13%``.
    """
    if ecart_pct > 5:
        return f"amount_difference_{math.floor(ecart_pct + 0.5)}%"
    return None


def score_fournisseur(nom_fournisseur: str, nom_extrait: str) -> float:
    if nom_extrait.lower() in nom_fournisseur.lower():
        return SCORE_FOURNISSEUR_NOM
    return SCORE_FOURNISSEUR_PARTIEL


def score_global(scores: dict[str, float]) -> float:
    """Weighted sum of the four partial scores (missing ones count as 0)."""
    return sum(POIDS[cle] * scores.get(cle, 0.0) for cle in POIDS)


def classer_score(score: float, anomalies: list[str]) -> StatutRapprochement:
    if score >= SEUIL_AUTOMATIQUE and not anomalies:
        return StatutRapprochement.MATCH_AUTOMATIQUE
    if score >= SEUIL_PROBABLE:
        return StatutRapprochement.MATCH_PROBABLE
    if score >= SEUIL_INCERTAIN:
        return StatutRapprochement.MATCH_INCERTAIN
    return StatutRapprochement.AUCUN_MATCH


def statut_facture_pour(statut: StatutRapprochement) -> StatutFacture:
    if statut is StatutRapprochement.MATCH_AUTOMATIQUE:
        return StatutFacture.A_APPROUVER
    if statut is StatutRapprochement.AUCUN_MATCH:
        return StatutFacture.EXCEPTION
    return StatutFacture.A_RAPPROCHER
