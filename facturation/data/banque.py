"""Bank statements and reconciliation of debit transactions with invoices."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.bank_matching import suggerer
from domain.exceptions import ErreurValidation, FactureIntrouvable
from domain.models import (
    EntreeAudit,
    SensTransaction,
    StatutFacture,
    StatutTransaction,
    SuggestionRapprochementBancaire,
)
from facturation.adapters.outbound.sqlalchemy_models import (
    Facture,
    Fournisseur,
    ReleveBancaire,
    TransactionBancaire,
)
from facturation.adapters.outbound.sqlalchemy_repos import SqlAlchemyAuditRepository

logger = logging.getLogger(__name__)

# Invoices that can still be paid
STATUTS_A_PAYER = (StatutFacture.PRETE_COMPTABILISATION.value, StatutFacture.A_APPROUVER.value)


# ── Statements ──────────────────────────────────────────────────────────


def create_statement(
    session: Session,
    nom_fichier: str,
    transactions: list[dict],
    format_fichier: str = "csv",
    compte: str | None = None,
    importe_par: str | None = None,
) -> ReleveBancaire:
    """Store a statement and its transactions.

    Each transaction dict holds ``date_operation``, ``montant`` and
    ``sens`` plus the optional ``date_valeur``, ``description``,
    ``reference_bancaire``, ``nom_contrepartie`` and ``iban_contrepartie``.
    Amounts are stored as absolute values.
    """
    if not transactions:
        raise ErreurValidation("Aucune transaction valide trouvée")

    dates = sorted(t["date_operation"] for t in transactions)
    total_debits = sum(
        abs(t["montant"]) for t in transactions
        if SensTransaction(t["sens"]) is SensTransaction.DEBIT
    )
    total_credits = sum(
        abs(t["montant"]) for t in transactions
        if SensTransaction(t["sens"]) is SensTransaction.CREDIT
    )
    releve = ReleveBancaire(
        nom_fichier=nom_fichier,
        format_fichier=format_fichier,
        compte=compte,
        date_debut=dates[0],
        date_fin=dates[-1],
        total_debits=round(total_debits, 2),
        total_credits=round(total_credits, 2),
        nb_transactions=len(transactions),
        statut="processed",
        importe_par=importe_par,
    )
    for t in transactions:
        releve.transactions.append(TransactionBancaire(
            date_operation=t["date_operation"],
            date_valeur=t.get("date_valeur"),
            montant=abs(t["montant"]),
            sens=SensTransaction(t["sens"]).value,
            description=t.get("description"),
            reference_bancaire=t.get("reference_bancaire"),
            nom_contrepartie=t.get("nom_contrepartie"),
            iban_contrepartie=t.get("iban_contrepartie"),
            statut=StatutTransaction.PENDING.value,
        ))
    session.add(releve)
    session.flush()
    logger.info("Relevé %s importé: %d transactions", nom_fichier, len(transactions))
    return releve


def list_statements(session: Session) -> list[ReleveBancaire]:
    stmt = select(ReleveBancaire).order_by(ReleveBancaire.cree_le.desc(), ReleveBancaire.id.desc())
    return list(session.scalars(stmt))


def list_transactions(session: Session, releve_id: int | None = None) -> list[TransactionBancaire]:
    stmt = select(TransactionBancaire).order_by(
        TransactionBancaire.date_operation.desc(), TransactionBancaire.id.desc()
    )
    if releve_id is not None:
        stmt = stmt.where(TransactionBancaire.releve_id == releve_id)
    return list(session.scalars(stmt))


def list_unmatched_debits(session: Session) -> list[TransactionBancaire]:
    stmt = (
        select(TransactionBancaire)
        .where(
            TransactionBancaire.statut == StatutTransaction.PENDING.value,
            TransactionBancaire.sens == SensTransaction.DEBIT.value,
        )
        .order_by(TransactionBancaire.date_operation.desc(), TransactionBancaire.id.desc())
    )
    return list(session.scalars(stmt))


def reconciliation_stats(session: Session) -> dict:
    statuts = list(session.scalars(select(TransactionBancaire.statut)))
    total = len(statuts)
    rapprochees = statuts.count(StatutTransaction.MATCHED.value)
    return {
        "matched": rapprochees,
        "pending": statuts.count(StatutTransaction.PENDING.value),
        "ignored": statuts.count(StatutTransaction.IGNORED.value),
        "total": total,
        "match_rate": round(rapprochees / total * 100) if total else 0,
    }


# ── Matching ────────────────────────────────────────────────────────────


def _transaction(session: Session, transaction_id: int) -> TransactionBancaire:
    transaction = session.get(TransactionBancaire, transaction_id)
    if transaction is None:
        raise ErreurValidation(f"Transaction introuvable: {transaction_id}")
    return transaction


def match_transaction(
    session: Session,
    transaction_id: int,
    facture_id: int,
    utilisateur_id: str | None = None,
    confiance: int | None = None,
    methode: str = "manual",
) -> TransactionBancaire:
    if methode not in ("manual", "auto"):
        raise ValueError(f"Méthode inconnue: {methode}")
    transaction = _transaction(session, transaction_id)
    if session.get(Facture, facture_id) is None:
        raise FactureIntrouvable(facture_id)

    transaction.facture_id = facture_id
    transaction.confiance = confiance
    transaction.methode = methode
    transaction.rapproche_par = utilisateur_id
    transaction.rapproche_le = datetime.now(timezone.utc)
    transaction.statut = StatutTransaction.MATCHED.value
    SqlAlchemyAuditRepository(session).enregistrer(EntreeAudit(
        type_entite="bank_transaction",
        entite_id=transaction_id,
        action="matched",
        changements={"invoice_id": facture_id, "confidence": confiance, "method": methode},
        effectue_par=utilisateur_id,
    ))
    session.flush()
    return transaction


def unmatch_transaction(session: Session, transaction_id: int) -> TransactionBancaire:
    transaction = _transaction(session, transaction_id)
    transaction.facture_id = None
    transaction.confiance = None
    transaction.methode = None
    transaction.rapproche_par = None
    transaction.rapproche_le = None
    transaction.statut = StatutTransaction.PENDING.value
    session.flush()
    return transaction


def ignore_transaction(session: Session, transaction_id: int) -> TransactionBancaire:
    transaction = _transaction(session, transaction_id)
    transaction.statut = StatutTransaction.IGNORED.value
    session.flush()
    return transaction


def suggestions(session: Session, transaction_id: int) -> list[SuggestionRapprochementBancaire]:
    """Unpaid invoices most likely settled by the transaction."""
    transaction = _transaction(session, transaction_id)
    factures = list(session.scalars(select(Facture).where(Facture.statut.in_(STATUTS_A_PAYER))))
    noms = dict(session.execute(select(Fournisseur.id, Fournisseur.nom)).all())
    return suggerer(transaction, factures, noms)
