"""Accounting CSV export of the invoices ready for posting."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from domain.exceptions import ErreurValidation
from domain.models import EntreeAudit, StatutFacture
from facturation.adapters.outbound.sqlalchemy_models import Facture
from facturation.adapters.outbound.sqlalchemy_repos import SqlAlchemyAuditRepository

logger = logging.getLogger(__name__)

SEPARATEURS = (";", ",", "\t")
FORMATS_DATE = ("iso", "fr", "us")
BOM = "\ufeff"


def _nombre(valeur: float | None) -> str:
    if valeur is None:
        return "0"
    return str(int(valeur)) if float(valeur).is_integer() else str(valeur)


def _texte(valeur) -> str:
    return "" if valeur is None else str(valeur)


@dataclass(frozen=True)
class ChampExport:
    cle: str
    libelle: str
    actif: bool
    valeur: Callable[[Facture], object]


CHAMPS_EXPORT = (
    ChampExport("invoice_number", "N° Facture", True, lambda f: _texte(f.numero_facture)),
    ChampExport(
        "supplier_name", "Fournisseur", True,
        lambda f: (f.fournisseur.nom if f.fournisseur else None) or _texte(f.nom_fournisseur_extrait),
    ),
    ChampExport(
        "supplier_id", "ID Fournisseur", True,
        lambda f: _texte(f.fournisseur.identifiant if f.fournisseur else None),
    ),
    ChampExport("issue_date", "Date Facture", True, lambda f: f.date_emission),
    ChampExport("due_date", "Date Échéance", True, lambda f: f.date_echeance),
    ChampExport("amount_ht", "Montant HT", True, lambda f: _nombre(f.montant_ht)),
    ChampExport("amount_tva", "Montant TVA", True, lambda f: _nombre(f.montant_tva)),
    ChampExport("amount_ttc", "Montant TTC", True, lambda f: _nombre(f.montant_ttc)),
    ChampExport("currency", "Devise", True, lambda f: f.devise or "EUR"),
    ChampExport("po_number", "N° BC", True, lambda f: _texte(f.numero_bc_extrait)),
    ChampExport("bl_number", "N° BL", False, lambda f: _texte(f.numero_bl_extrait)),
    ChampExport("iban", "IBAN", False, lambda f: _texte(f.iban_extrait)),
    ChampExport("accounting_ref", "Réf. Comptable", False, lambda f: _texte(f.reference_comptable)),
)

CHAMPS_PAR_CLE = {c.cle: c for c in CHAMPS_EXPORT}


def format_date(valeur: date | None, format_date: str = "iso") -> str:
    if valeur is None:
        return ""
    if format_date == "fr":
        return valeur.strftime("%d/%m/%Y")
    if format_date == "us":
        return f"{valeur.month}/{valeur.day}/{valeur.year}"
    return valeur.isoformat()


def invoices_for_export(session: Session) -> list[Facture]:
    stmt = (
        select(Facture)
        .options(joinedload(Facture.fournisseur))
        .where(Facture.statut == StatutFacture.PRETE_COMPTABILISATION.value)
        .order_by(Facture.date_emission.asc(), Facture.id.asc())
    )
    return list(session.scalars(stmt))


def generate_csv(
    factures: list[Facture],
    champs: list[str] | None = None,
    separateur: str = ";",
    format_date_export: str = "iso",
    entete: bool = True,
    bom: bool = False,
) -> str:
    """Build the export text; every value is quoted and rows end with ``\\n``.

    Args:
        champs: Field keys to export, defaults to the enabled fields.
    """
    if separateur not in SEPARATEURS:
        raise ErreurValidation(f"Séparateur non supporté: {separateur!r}")
    if format_date_export not in FORMATS_DATE:
        raise ErreurValidation(f"Format de date non supporté: {format_date_export}")
    if champs is None:
        selection = [c for c in CHAMPS_EXPORT if c.actif]
    else:
        inconnus = [c for c in champs if c not in CHAMPS_PAR_CLE]
        if inconnus:
            raise ErreurValidation(f"Champs inconnus: {', '.join(inconnus)}")
        selection = [CHAMPS_PAR_CLE[c] for c in champs]

    lignes = []
    for facture in factures:
        ligne = {}
        for champ in selection:
            valeur = champ.valeur(facture)
            if "date" in champ.cle:
                valeur = format_date(valeur, format_date_export)
            ligne[champ.libelle] = valeur
        lignes.append(ligne)
    df = pd.DataFrame(lignes, columns=[c.libelle for c in selection], dtype=str)

    texte = df.to_csv(
        sep=separateur,
        index=False,
        header=entete,
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
    )
    texte = texte.removesuffix("\n")
    return (BOM if bom else "") + texte


def mark_exported(
    session: Session, facture_ids: list[int], utilisateur_id: str | None = None
) -> list[Facture]:
    """Move exported invoices to ``comptabilisee`` with an accounting reference."""
    maintenant = datetime.now(timezone.utc)
    stmt = select(Facture).where(
        Facture.id.in_(facture_ids),
        Facture.statut == StatutFacture.PRETE_COMPTABILISATION.value,
    )
    factures = list(session.scalars(stmt))
    audit = SqlAlchemyAuditRepository(session)
    for facture in factures:
        facture.statut = StatutFacture.COMPTABILISEE.value
        facture.exportee_le = maintenant
        facture.reference_comptable = facture.reference_comptable or (
            f"EXP-{maintenant:%Y%m%d}-{facture.id}"
        )
        audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture.id,
            action="exported",
            changements={"accounting_ref": facture.reference_comptable},
            effectue_par=utilisateur_id,
        ))
    session.flush()
    logger.info("%d factures marquées comptabilisées", len(factures))
    return factures
