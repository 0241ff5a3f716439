"""Supplier disputes: lifecycle, communications log and email templates."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.exceptions import ErreurValidation, FactureIntrouvable
from domain.models import (
    CategorieLitige,
    EntreeAudit,
    PrioriteLitige,
    StatutFacture,
    StatutLitige,
    TypeCommunication,
)
from facturation.adapters.outbound.sqlalchemy_models import (
    CommunicationLitige,
    Facture,
    Litige,
)
from facturation.adapters.outbound.sqlalchemy_repos import SqlAlchemyAuditRepository

logger = logging.getLogger(__name__)

_SIGNATURE = "Cordialement,\nL'équipe Comptabilité"

EMAIL_TEMPLATES: dict[str, dict[str, str]] = {
    CategorieLitige.AMOUNT_MISMATCH.value: {
        "subject": "Écart de montant sur facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "Nous avons constaté un écart de montant sur la facture #{invoiceNumber}.\n\n"
            "Montant facturé : {amount}\n"
            "Montant attendu : {expectedAmount}\n"
            "Écart : {discrepancy}\n\n"
            "Pourriez-vous nous transmettre une facture rectificative ou nous "
            "apporter des précisions ?\n\n" + _SIGNATURE
        ),
    },
    CategorieLitige.QUALITY_ISSUE.value: {
        "subject": "Problème qualité - Facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "Nous souhaitons vous signaler un problème de qualité concernant la "
            "livraison associée à la facture #{invoiceNumber}.\n\n"
            "{description}\n\n"
            "Merci de nous indiquer les actions correctives envisagées.\n\n" + _SIGNATURE
        ),
    },
    CategorieLitige.DELIVERY_ISSUE.value: {
        "subject": "Problème de livraison - Facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "La livraison correspondant à la facture #{invoiceNumber} présente une "
            "anomalie.\n\n"
            "{description}\n\n"
            "Merci de revenir vers nous rapidement.\n\n" + _SIGNATURE
        ),
    },
    CategorieLitige.DUPLICATE.value: {
        "subject": "Doublon potentiel - Facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "La facture #{invoiceNumber} semble avoir déjà été reçue et traitée.\n\n"
            "Pourriez-vous confirmer s'il s'agit d'un doublon ?\n\n" + _SIGNATURE
        ),
    },
    CategorieLitige.MISSING_PO.value: {
        "subject": "Bon de commande manquant - Facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "Nous ne parvenons pas à rattacher la facture #{invoiceNumber} à un bon "
            "de commande.\n\n"
            "Merci de nous communiquer le numéro de bon de commande correspondant.\n\n"
            + _SIGNATURE
        ),
    },
    CategorieLitige.OTHER.value: {
        "subject": "Demande d'information - Facture #{invoiceNumber}",
        "body": (
            "Bonjour,\n\n"
            "Nous avons besoin d'informations complémentaires concernant la facture "
            "#{invoiceNumber}.\n\n"
            "{description}\n\n" + _SIGNATURE
        ),
    },
}


def render_email_template(categorie: str | CategorieLitige, **valeurs) -> dict[str, str]:
    """Fill the template of *categorie*; unknown placeholders stay empty."""
    cle = CategorieLitige(categorie).value
    modele = EMAIL_TEMPLATES[cle]
    champs = {
        "invoiceNumber": "",
        "amount": "",
        "expectedAmount": "",
        "discrepancy": "",
        "description": "",
    }
    champs.update({k: "" if v is None else str(v) for k, v in valeurs.items()})
    return {
        "subject": modele["subject"].format(**champs),
        "body": modele["body"].format(**champs),
    }


# ── Disputes ────────────────────────────────────────────────────────────


def create_dispute(
    session: Session,
    facture_id: int,
    description: str,
    categorie: str | CategorieLitige = CategorieLitige.OTHER,
    priorite: str | PrioriteLitige = PrioriteLitige.MEDIUM,
    cree_par: str | None = None,
    attribue_a: str | None = None,
) -> Litige:
    """Open a dispute and move the invoice to ``litige``."""
    facture = session.get(Facture, facture_id)
    if facture is None:
        raise FactureIntrouvable(facture_id)
    if not (description and description.strip()):
        raise ErreurValidation("La description du litige est requise")

    litige = Litige(
        facture_id=facture_id,
        categorie=CategorieLitige(categorie).value,
        description=description.strip(),
        priorite=PrioriteLitige(priorite).value,
        statut=StatutLitige.OPEN.value,
        cree_par=cree_par,
        attribue_a=attribue_a,
    )
    session.add(litige)
    ancien_statut = facture.statut
    facture.statut = StatutFacture.LITIGE.value
    session.flush()

    SqlAlchemyAuditRepository(session).enregistrer(EntreeAudit(
        type_entite="dispute",
        entite_id=litige.id,
        action="created",
        changements={
            "invoice_id": facture_id,
            "category": litige.categorie,
            "previous_status": ancien_statut,
        },
        effectue_par=cree_par,
    ))
    logger.info("Litige %s ouvert sur la facture %s", litige.id, facture_id)
    return litige


def update_dispute(
    session: Session,
    litige_id: int,
    utilisateur_id: str | None = None,
    statut: str | StatutLitige | None = None,
    priorite: str | PrioriteLitige | None = None,
    attribue_a: str | None = None,
    resolution: str | None = None,
) -> Litige:
    litige = get_dispute(session, litige_id)
    if priorite is not None:
        litige.priorite = PrioriteLitige(priorite).value
    if attribue_a is not None:
        litige.attribue_a = attribue_a
    if resolution is not None:
        litige.resolution = resolution
    if statut is not None:
        statut = StatutLitige(statut)
        litige.statut = statut.value
        if statut is StatutLitige.RESOLVED:
            litige.resolu_par = utilisateur_id
            litige.resolu_le = datetime.now(timezone.utc)
    session.flush()
    return litige


def get_dispute(session: Session, litige_id: int) -> Litige:
    litige = session.get(Litige, litige_id)
    if litige is None:
        raise ErreurValidation(f"Litige introuvable: {litige_id}")
    return litige


def list_disputes(
    session: Session,
    statut: str | StatutLitige | None = None,
    facture_id: int | None = None,
) -> list[Litige]:
    stmt = select(Litige).order_by(Litige.cree_le.desc(), Litige.id.desc())
    if statut is not None:
        stmt = stmt.where(Litige.statut == StatutLitige(statut).value)
    if facture_id is not None:
        stmt = stmt.where(Litige.facture_id == facture_id)
    return list(session.scalars(stmt))


# ── Communications ──────────────────────────────────────────────────────


def add_communication(
    session: Session,
    litige_id: int,
    type_communication: str | TypeCommunication,
    contenu: str,
    cree_par: str | None = None,
    modele_email: str | None = None,
    destinataires: list[str] | None = None,
) -> CommunicationLitige:
    get_dispute(session, litige_id)
    if not (contenu and contenu.strip()):
        raise ErreurValidation("Le contenu de la communication est requis")
    communication = CommunicationLitige(
        litige_id=litige_id,
        type_communication=TypeCommunication(type_communication).value,
        contenu=contenu,
        modele_email=modele_email,
        destinataires=destinataires,
        cree_par=cree_par,
    )
    session.add(communication)
    session.flush()
    return communication


def list_communications(session: Session, litige_id: int) -> list[CommunicationLitige]:
    stmt = (
        select(CommunicationLitige)
        .where(CommunicationLitige.litige_id == litige_id)
        .order_by(CommunicationLitige.cree_le.desc(), CommunicationLitige.id.desc())
    )
    return list(session.scalars(stmt))
