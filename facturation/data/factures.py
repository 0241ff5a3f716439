"""Invoice queries, manual status transitions and exception handling."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from domain.exceptions import FactureIntrouvable
from domain.models import EntreeAudit, StatutFacture
from domain.workflow import (
    changements_resolution,
    changements_transition,
    verifier_transition,
)
from facturation.adapters.outbound.sqlalchemy_models import Facture
from facturation.adapters.outbound.sqlalchemy_repos import (
    SqlAlchemyAuditRepository,
    SqlAlchemyFactureRepository,
)
from facturation.data.litiges import create_dispute

logger = logging.getLogger(__name__)


# ── Queries ─────────────────────────────────────────────────────────────


def get_invoice(session: Session, facture_id: int) -> Facture:
    facture = session.get(Facture, facture_id)
    if facture is None:
        raise FactureIntrouvable(facture_id)
    return facture


def list_invoices(
    session: Session,
    statut: str | StatutFacture | None = None,
    fournisseur_id: int | None = None,
    limit: int | None = None,
) -> list[Facture]:
    stmt = select(Facture).order_by(Facture.cree_le.desc(), Facture.id.desc())
    if statut is not None:
        stmt = stmt.where(Facture.statut == StatutFacture(statut).value)
    if fournisseur_id is not None:
        stmt = stmt.where(Facture.fournisseur_id == fournisseur_id)
    if limit:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))


def list_exceptions(session: Session) -> list[Facture]:
    """Invoices in exception or dispute, or carrying matching anomalies."""
    stmt = (
        select(Facture)
        .where(or_(
            Facture.statut.in_([StatutFacture.EXCEPTION.value, StatutFacture.LITIGE.value]),
            Facture.a_anomalies.is_(True),
        ))
        .order_by(Facture.cree_le.desc(), Facture.id.desc())
    )
    return list(session.scalars(stmt))


# ── Commands ────────────────────────────────────────────────────────────


def change_status(
    session: Session,
    facture_id: int,
    vers: str | StatutFacture,
    utilisateur_id: str | None = None,
    motif: str | None = None,
) -> Facture:
    """Apply a manual workflow transition after checking it is allowed."""
    facture = get_invoice(session, facture_id)
    depuis = StatutFacture(facture.statut)
    vers = StatutFacture(vers)
    verifier_transition(depuis, vers, motif)

    SqlAlchemyFactureRepository(session).mettre_a_jour(
        facture_id, changements_transition(vers, motif)
    )
    SqlAlchemyAuditRepository(session).enregistrer(EntreeAudit(
        type_entite="invoice",
        entite_id=facture_id,
        action="status_changed",
        changements={"from": depuis.value, "to": vers.value, "reason": motif},
        effectue_par=utilisateur_id,
    ))
    session.flush()
    logger.info("Facture %s: %s -> %s", facture_id, depuis.value, vers.value)
    return facture


def resolve_exception(
    session: Session,
    facture_id: int,
    action: str,
    utilisateur_id: str | None = None,
    commentaire: str | None = None,
) -> Facture:
    """Resolve an exception by validating, rejecting or reprocessing the invoice.

    ``reject`` opens a dispute on the invoice.
    """
    facture = get_invoice(session, facture_id)
    changements = changements_resolution(action)
    SqlAlchemyFactureRepository(session).mettre_a_jour(facture_id, changements)

    if action == "reject":
        create_dispute(
            session,
            facture_id,
            commentaire or "Litige créé depuis la gestion des exceptions",
            cree_par=utilisateur_id,
        )

    SqlAlchemyAuditRepository(session).enregistrer(EntreeAudit(
        type_entite="invoice",
        entite_id=facture_id,
        action=f"exception_{action}",
        changements={"comment": commentaire},
        effectue_par=utilisateur_id,
    ))
    session.flush()
    return facture
