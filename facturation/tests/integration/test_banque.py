"""Integration tests for bank statements and transaction reconciliation."""

from datetime import date

import pytest

from domain.exceptions import ErreurValidation, FactureIntrouvable
from facturation.data.banque import (
    create_statement,
    ignore_transaction,
    list_statements,
    list_transactions,
    list_unmatched_debits,
    match_transaction,
    reconciliation_stats,
    suggestions,
    unmatch_transaction,
)

TRANSACTIONS = [
    {
        "date_operation": date(2024, 3, 5), "montant": -1200.0, "sens": "debit",
        "description": "VIR ACME F-2024-01", "nom_contrepartie": "ACME",
    },
    {"date_operation": date(2024, 3, 1), "montant": 500.0, "sens": "credit"},
    {"date_operation": date(2024, 3, 9), "montant": 80.0, "sens": "debit", "description": "Frais"},
]


@pytest.fixture
def releve(session):
    return create_statement(session, "mars.csv", TRANSACTIONS, compte="FR76 0001")


class TestStatements:
    def test_totals_and_period(self, releve):
        assert releve.total_debits == 1280.0
        assert releve.total_credits == 500.0
        assert releve.nb_transactions == 3
        assert (releve.date_debut, releve.date_fin) == (date(2024, 3, 1), date(2024, 3, 9))
        assert releve.statut == "processed"

    def test_amounts_stored_absolute(self, session, releve):
        montants = [t.montant for t in list_transactions(session, releve.id)]
        assert montants == [80.0, 1200.0, 500.0]

    def test_empty_statement_rejected(self, session):
        with pytest.raises(ErreurValidation):
            create_statement(session, "vide.csv", [])
        assert list_statements(session) == []

    def test_unmatched_debits_only(self, session, releve):
        descriptions = [t.description for t in list_unmatched_debits(session)]
        assert descriptions == ["Frais", "VIR ACME F-2024-01"]


class TestReconciliation:
    def _debit(self, session):
        return next(t for t in list_transactions(session) if t.montant == 1200.0)

    def test_match_unmatch(self, session, releve, nouvelle_facture):
        facture = nouvelle_facture(statut="prete_comptabilisation", montant_ttc=1200.0)
        transaction = self._debit(session)

        match_transaction(session, transaction.id, facture.id, "u1", confiance=80)
        assert transaction.statut == "matched"
        assert transaction.facture_id == facture.id
        assert transaction.methode == "manual"
        assert transaction.rapproche_le is not None

        unmatch_transaction(session, transaction.id)
        assert transaction.statut == "pending"
        assert transaction.facture_id is None
        assert transaction.confiance is None

    def test_match_unknown_invoice(self, session, releve):
        with pytest.raises(FactureIntrouvable):
            match_transaction(session, self._debit(session).id, 99)

    def test_match_unknown_method(self, session, releve, nouvelle_facture):
        facture = nouvelle_facture()
        with pytest.raises(ValueError):
            match_transaction(session, self._debit(session).id, facture.id, methode="robot")

    def test_stats(self, session, releve, nouvelle_facture):
        facture = nouvelle_facture()
        transactions = list_transactions(session, releve.id)
        match_transaction(session, transactions[0].id, facture.id)
        ignore_transaction(session, transactions[1].id)
        assert reconciliation_stats(session) == {
            "matched": 1, "pending": 1, "ignored": 1, "total": 3, "match_rate": 33,
        }

    def test_stats_empty(self, session):
        assert reconciliation_stats(session)["match_rate"] == 0

    def test_unknown_transaction(self, session):
        with pytest.raises(ErreurValidation):
            ignore_transaction(session, 5)


def test_suggestions_rank_unpaid_invoices(session, releve, referentiel, nouvelle_facture):
    fournisseur_id = referentiel["fournisseur"].id
    exacte = nouvelle_facture(
        statut="prete_comptabilisation", montant_ttc=1200.0,
        numero_facture="F-2024-01", fournisseur_id=fournisseur_id,
    )
    proche = nouvelle_facture(statut="a_approuver", montant_ttc=1190.0)
    nouvelle_facture(statut="comptabilisee", montant_ttc=1200.0)

    debit = next(t for t in list_transactions(session) if t.montant == 1200.0)
    resultats = suggestions(session, debit.id)

    assert [s.facture_id for s in resultats] == [exacte.id, proche.id]
    assert resultats[0].score == 100
    assert resultats[0].raisons == [
        "Montant exact", "Fournisseur correspondant", "Référence facture trouvée",
    ]
    assert resultats[1].score == 30
