"""Tests for domain.matching — partial scores, weighting and buckets."""

import pytest

from domain.matching import (
    anomalie_montant,
    classer_score,
    ecart_montant_pct,
    score_fournisseur,
    score_global,
    score_montant,
    statut_facture_pour,
)
from domain.models import StatutFacture, StatutRapprochement


class TestScoreMontant:
    """Tests for the amount difference scoring."""

    def test_ecart_pct(self):
        assert ecart_montant_pct(1100, 1000) == pytest.approx(10.0)

    @pytest.mark.parametrize("ecart, attendu", [
        (0, 1.0), (1, 1.0), (1.01, 0.8), (5, 0.8), (7, 0.5), (10, 0.5), (10.5, 0.2),
    ])
    def test_buckets(self, ecart, attendu):
        assert score_montant(ecart) == attendu

    def test_no_anomaly_up_to_five_percent(self):
        assert anomalie_montant(5) is None

    def test_anomaly_tag_rounded(self):
        assert anomalie_montant(12.4) == "amount_difference_12%"

    @pytest.mark.parametrize("ecart, attendu", [
        (12.5, "amount_difference_13%"), (6.5, "amount_difference_7%"), (5.5, "amount_difference_6%"),
    ])
    def test_anomaly_tag_half_rounds_up(self, ecart, attendu):
        assert anomalie_montant(ecart) == attendu

    def test_anomaly_tag_from_amounts(self):
        assert anomalie_montant(ecart_montant_pct(1125, 1000)) == "amount_difference_13%"


class TestScoreFournisseur:
    """Tests for score_fournisseur."""

    def test_contained_name(self):
        assert score_fournisseur("ACME Industries SA", "acme") == 0.9

    def test_other_name(self):
        assert score_fournisseur("ACME", "Acme Industries") == 0.7


class TestScoreGlobal:
    """Tests for the weighted score and its buckets."""

    def test_all_exact(self):
        scores = {"po": 1.0, "bl": 1.0, "supplier": 1.0, "amount": 1.0}
        assert score_global(scores) == pytest.approx(1.0)

    def test_missing_scores_count_as_zero(self):
        assert score_global({"po": 1.0}) == pytest.approx(0.4)

    def test_weights(self):
        scores = {"po": 1.0, "bl": 0.0, "supplier": 0.9, "amount": 1.0}
        assert score_global(scores) == pytest.approx(0.4 + 0.18 + 0.15)

    @pytest.mark.parametrize("composante", ["po", "bl", "supplier", "amount"])
    @pytest.mark.parametrize("base", [
        {},
        {"po": 0.7, "bl": 0.8, "supplier": 0.6, "amount": 0.5},
        {"po": 1.0, "bl": 0.0, "supplier": 0.9, "amount": 0.2},
    ])
    def test_monotonic_in_each_component(self, base, composante):
        precedent = None
        for valeur in (0.0, 0.2, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0):
            score = score_global({**base, composante: valeur})
            if precedent is not None:
                assert score >= precedent
            precedent = score

    def test_amount_score_decreases_with_gap(self):
        ecarts = [0, 0.5, 1, 3, 5, 7, 10, 15, 40]
        scores = [score_montant(e) for e in ecarts]
        assert scores == sorted(scores, reverse=True)

    def test_automatic_requires_no_anomaly(self):
        assert classer_score(0.9, []) is StatutRapprochement.MATCH_AUTOMATIQUE
        assert classer_score(0.9, ["x"]) is StatutRapprochement.MATCH_PROBABLE

    @pytest.mark.parametrize("score, attendu", [
        (0.85, StatutRapprochement.MATCH_AUTOMATIQUE),
        (0.6, StatutRapprochement.MATCH_PROBABLE),
        (0.3, StatutRapprochement.MATCH_INCERTAIN),
        (0.29, StatutRapprochement.AUCUN_MATCH),
    ])
    def test_thresholds(self, score, attendu):
        assert classer_score(score, []) is attendu

    def test_invoice_status_for_bucket(self):
        assert statut_facture_pour(StatutRapprochement.MATCH_AUTOMATIQUE) is StatutFacture.A_APPROUVER
        assert statut_facture_pour(StatutRapprochement.MATCH_PROBABLE) is StatutFacture.A_RAPPROCHER
        assert statut_facture_pour(StatutRapprochement.MATCH_INCERTAIN) is StatutFacture.A_RAPPROCHER
        assert statut_facture_pour(StatutRapprochement.AUCUN_MATCH) is StatutFacture.EXCEPTION
