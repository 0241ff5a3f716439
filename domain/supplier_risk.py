"""Supplier risk scoring — pure functions, zero external dependencies."""

from __future__ import annotations

from datetime import date

from domain.models import StatutFacture

SCORE_BASE = 50


def est_en_retard(date_echeance: date | None, statut: str | None, aujourd_hui: date) -> bool:
    """Due date passed and the invoice not yet posted to accounting."""
    if date_echeance is None:
        return False
    return date_echeance < aujourd_hui and statut != StatutFacture.COMPTABILISEE.value


def score_risque(nb_factures: int, nb_litiges: int, nb_retards: int) -> int:
    """0..100, lower is better; 50 for a supplier without invoices."""
    if nb_factures == 0:
        return SCORE_BASE
    taux_litige = nb_litiges / nb_factures
    taux_retard = nb_retards / nb_factures
    score = SCORE_BASE + taux_litige * 30 + taux_retard * 20
    return round(min(100, max(0, score)))
