"""Supplier 360 view and risk score recomputation."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.exceptions import ErreurValidation
from domain.models import StatutFacture
from domain.supplier_risk import est_en_retard, score_risque
from facturation.adapters.outbound.sqlalchemy_models import (
    BonCommande,
    Facture,
    Fournisseur,
    Litige,
)

logger = logging.getLogger(__name__)

LIMITE = 50


def vue_360(session: Session, fournisseur_id: int) -> dict:
    """Supplier record, latest invoices, disputes, purchase orders and totals."""
    fournisseur = session.get(Fournisseur, fournisseur_id)
    if fournisseur is None:
        raise ErreurValidation(f"Fournisseur introuvable: {fournisseur_id}")

    factures = list(session.scalars(
        select(Facture)
        .where(Facture.fournisseur_id == fournisseur_id)
        .order_by(Facture.cree_le.desc(), Facture.id.desc())
        .limit(LIMITE)
    ))
    ids = [f.id for f in factures]
    litiges = list(session.scalars(
        select(Litige).where(Litige.facture_id.in_(ids)).order_by(Litige.cree_le.desc())
    )) if ids else []
    bons = list(session.scalars(
        select(BonCommande)
        .where(BonCommande.fournisseur_id == fournisseur_id)
        .order_by(BonCommande.date_commande.desc())
        .limit(LIMITE)
    ))

    total = sum(f.montant_ttc or 0 for f in factures)
    payees = [f for f in factures if f.statut == StatutFacture.COMPTABILISEE.value]
    en_attente = [
        f for f in factures
        if f.statut not in (StatutFacture.COMPTABILISEE.value, StatutFacture.LITIGE.value)
    ]
    return {
        "fournisseur": fournisseur,
        "factures": factures,
        "litiges": litiges,
        "bons_commande": bons,
        "stats": {
            "montant_total": total,
            "montant_moyen": total / len(factures) if factures else 0,
            "nb_payees": len(payees),
            "nb_en_attente": len(en_attente),
            "taux_litige": len(litiges) / len(factures) * 100 if factures else 0,
        },
    }


def recalculer_risque(session: Session, fournisseur_id: int, aujourd_hui: date | None = None) -> int:
    """Recompute and store the risk score and counters of one supplier."""
    aujourd_hui = aujourd_hui or date.today()
    fournisseur = session.get(Fournisseur, fournisseur_id)
    if fournisseur is None:
        raise ErreurValidation(f"Fournisseur introuvable: {fournisseur_id}")

    factures = list(session.scalars(select(Facture).where(Facture.fournisseur_id == fournisseur_id)))
    ids = [f.id for f in factures]
    nb_litiges = len(list(session.scalars(
        select(Litige.id).where(Litige.facture_id.in_(ids))
    ))) if ids else 0
    nb_retards = sum(1 for f in factures if est_en_retard(f.date_echeance, f.statut, aujourd_hui))

    fournisseur.score_risque = score_risque(len(factures), nb_litiges, nb_retards)
    fournisseur.nb_factures = len(factures)
    fournisseur.nb_factures_litige = nb_litiges
    fournisseur.nb_retards_paiement = nb_retards
    session.flush()
    logger.info("Score de risque %s: %s", fournisseur.nom, fournisseur.score_risque)
    return fournisseur.score_risque
