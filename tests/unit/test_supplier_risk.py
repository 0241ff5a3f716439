"""Tests for domain.supplier_risk."""

from datetime import date

from domain.supplier_risk import est_en_retard, score_risque


def test_score_sans_facture():
    assert score_risque(0, 0, 0) == 50


def test_score_fournisseur_sans_incident():
    assert score_risque(10, 0, 0) == 50


def test_score_pondere_litiges_et_retards():
    # 50 + 0.5 * 30 + 0.25 * 20
    assert score_risque(4, 2, 1) == 70


def test_score_plafonne_a_100():
    assert score_risque(1, 5, 5) == 100


def test_retard_echeance_depassee():
    assert est_en_retard(date(2024, 1, 1), "a_approuver", date(2024, 2, 1))


def test_pas_de_retard_si_comptabilisee():
    assert not est_en_retard(date(2024, 1, 1), "comptabilisee", date(2024, 2, 1))


def test_pas_de_retard_sans_echeance():
    assert not est_en_retard(None, "a_approuver", date(2024, 2, 1))
