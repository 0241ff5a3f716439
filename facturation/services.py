"""Composition of the domain services over one SQLAlchemy session."""

from __future__ import annotations

from sqlalchemy.orm import Session

from domain.approval_service import ApprovalService
from domain.matching_service import MatchingService
from domain.ocr_service import OcrService
from domain.ports import PasserelleIAPort, StockagePort
from facturation.adapters.outbound.sqlalchemy_repos import (
    SqlAlchemyAuditRepository,
    SqlAlchemyBonCommandeRepository,
    SqlAlchemyBonLivraisonRepository,
    SqlAlchemyFactureRepository,
    SqlAlchemyFournisseurRepository,
    SqlAlchemyHistoriqueApprobationRepository,
    SqlAlchemyRegleApprobationRepository,
)
from facturation.data.ocr_schema import champ_valide


def approval_service(session: Session) -> ApprovalService:
    return ApprovalService(
        factures=SqlAlchemyFactureRepository(session),
        regles=SqlAlchemyRegleApprobationRepository(session),
        historique=SqlAlchemyHistoriqueApprobationRepository(session),
        audit=SqlAlchemyAuditRepository(session),
    )


def matching_service(session: Session) -> MatchingService:
    return MatchingService(
        factures=SqlAlchemyFactureRepository(session),
        fournisseurs=SqlAlchemyFournisseurRepository(session),
        bons_commande=SqlAlchemyBonCommandeRepository(session),
        bons_livraison=SqlAlchemyBonLivraisonRepository(session),
        audit=SqlAlchemyAuditRepository(session),
    )


def ocr_service(
    session: Session,
    stockage: StockagePort,
    passerelle: PasserelleIAPort,
    config_ia: dict | None = None,
) -> OcrService:
    """OCR service whose matching step runs in a savepoint of *session*.

    The OCR results are kept when matching fails.
    """
    config_ia = config_ia or {}

    def rapprocher(facture_id: int):
        with session.begin_nested():
            return matching_service(session).rapprocher(facture_id)

    return OcrService(
        factures=SqlAlchemyFactureRepository(session),
        stockage=stockage,
        passerelle=passerelle,
        audit=SqlAlchemyAuditRepository(session),
        declencher_rapprochement=rapprocher,
        modele=config_ia.get("modele_ocr", "google/gemini-2.5-pro"),
        max_tokens=config_ia.get("max_tokens_ocr", 2000),
        champ_valide=champ_valide,
    )
