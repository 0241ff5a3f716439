"""Tests for domain.approval_rules — rule selection, roles and delegations."""

from datetime import date

import pytest

from domain.approval_rules import (
    construire_etapes,
    etape_en_attente,
    etat_apres_approbation,
    niveaux_autorises,
    peut_approuver,
    regle_applicable,
    roles_effectifs,
    selectionner_regle,
    valider_delegation,
    valider_regle,
)
from domain.exceptions import AucuneRegleApprobation, ErreurValidation
from domain.models import (
    Delegation,
    EtapeApprobation,
    RegleApprobation,
    Role,
    StatutEtape,
    StatutFacture,
)


def _regles():
    return [
        RegleApprobation(
            id=1, nom="Petits montants", montant_min=0, montant_max=5000,
            niveaux_requis=1, role_niveau_1=Role.COMPTABLE, priorite=10,
        ),
        RegleApprobation(
            id=2, nom="Montants moyens", montant_min=5000, montant_max=50000,
            niveaux_requis=2, role_niveau_1=Role.COMPTABLE, role_niveau_2=Role.DAF, priorite=10,
        ),
        RegleApprobation(
            id=3, nom="Gros montants", montant_min=50000, montant_max=None,
            niveaux_requis=3, role_niveau_1=Role.COMPTABLE, role_niveau_2=Role.DAF,
            role_niveau_3=Role.DG, priorite=10,
        ),
        RegleApprobation(
            id=4, nom="Fournisseur critique", montant_min=0, montant_max=None,
            fournisseur_critique=True, niveaux_requis=2,
            role_niveau_1=Role.DAF, role_niveau_2=Role.DG, priorite=100,
        ),
    ]


class TestRegleApplicable:
    """Tests for the amount range and critical-supplier predicate."""

    def test_lower_bound_inclusive(self):
        regle = _regles()[1]
        assert regle_applicable(regle, 5000, False)

    def test_upper_bound_exclusive(self):
        regle = _regles()[0]
        assert not regle_applicable(regle, 5000, False)

    def test_no_upper_bound(self):
        assert regle_applicable(_regles()[2], 10_000_000, False)

    def test_critical_rule_needs_critical_supplier(self):
        assert not regle_applicable(_regles()[3], 100, False)
        assert regle_applicable(_regles()[3], 100, True)

    def test_non_critical_rule_accepts_critical_supplier(self):
        assert regle_applicable(_regles()[0], 100, True)


class TestSelectionnerRegle:
    """Tests for selectionner_regle."""

    def test_picks_amount_bucket(self):
        assert selectionner_regle(_regles(), 12000, False).id == 2

    def test_boundary_goes_to_next_bucket(self):
        assert selectionner_regle(_regles(), 50000, False).id == 3

    def test_priority_wins_for_critical_supplier(self):
        assert selectionner_regle(_regles(), 100, True).id == 4

    def test_inactive_rules_ignored(self):
        regles = _regles()
        regles[3].active = False
        assert selectionner_regle(regles, 100, True).id == 1

    def test_no_rule_raises(self):
        with pytest.raises(AucuneRegleApprobation) as exc:
            selectionner_regle(_regles()[:2], 60000, False)
        assert exc.value.montant == 60000
        assert str(exc.value) == "Aucune règle d'approbation trouvée"

    def test_negative_amount_matches_nothing(self):
        with pytest.raises(AucuneRegleApprobation):
            selectionner_regle(_regles(), -1, False)


class TestConstruireEtapes:
    """Tests for construire_etapes."""

    def test_one_step_per_level(self):
        etapes = construire_etapes(_regles()[2], facture_id=7)
        assert [(e.niveau, e.role_requis) for e in etapes] == [
            (1, Role.COMPTABLE), (2, Role.DAF), (3, Role.DG),
        ]
        assert all(e.statut is StatutEtape.PENDING and e.facture_id == 7 for e in etapes)

    def test_level_without_role_skipped(self):
        regle = RegleApprobation(
            nom="Trou", niveaux_requis=3, role_niveau_1=Role.COMPTABLE, role_niveau_3=Role.DG
        )
        assert [e.niveau for e in construire_etapes(regle, 1)] == [1, 3]


class TestEtatApresApprobation:
    """Tests for etat_apres_approbation."""

    def test_intermediate_level(self):
        resultat = etat_apres_approbation(1, 2)
        assert not resultat.est_dernier
        assert resultat.niveau_courant == 2
        assert resultat.statut is StatutFacture.A_APPROUVER

    def test_last_level(self):
        resultat = etat_apres_approbation(2, 2)
        assert resultat.est_dernier
        assert resultat.niveau_courant == 2
        assert resultat.statut is StatutFacture.PRETE_COMPTABILISATION

    def test_missing_required_levels_defaults_to_one(self):
        assert etat_apres_approbation(1, None).est_dernier


class TestValiderRegle:
    """Tests for valider_regle."""

    def test_valid_rule(self):
        valider_regle(_regles()[1])

    def test_empty_name(self):
        with pytest.raises(ErreurValidation):
            valider_regle(RegleApprobation(nom=" ", role_niveau_1=Role.COMPTABLE))

    def test_levels_out_of_range(self):
        with pytest.raises(ErreurValidation):
            valider_regle(RegleApprobation(nom="x", niveaux_requis=4))

    def test_missing_role(self):
        with pytest.raises(ErreurValidation, match="niveau 2"):
            valider_regle(RegleApprobation(nom="x", niveaux_requis=2, role_niveau_1=Role.DAF))

    def test_max_below_min(self):
        with pytest.raises(ErreurValidation):
            valider_regle(RegleApprobation(
                nom="x", montant_min=100, montant_max=50, role_niveau_1=Role.DAF
            ))


class TestRolesEtDelegations:
    """Tests for effective roles, allowed levels and delegation checks."""

    def test_delegation_adds_delegator_roles(self):
        delegation = Delegation("daf1", "compta1", date(2024, 1, 1), date(2024, 1, 31))
        roles = roles_effectifs(
            [Role.COMPTABLE], [delegation], {"daf1": [Role.DAF]}, date(2024, 1, 15)
        )
        assert roles == {Role.COMPTABLE, Role.DAF}

    def test_expired_delegation_ignored(self):
        delegation = Delegation("daf1", "compta1", date(2024, 1, 1), date(2024, 1, 31))
        roles = roles_effectifs(
            [Role.COMPTABLE], [delegation], {"daf1": [Role.DAF]}, date(2024, 2, 1)
        )
        assert roles == {Role.COMPTABLE}

    def test_inactive_delegation_ignored(self):
        delegation = Delegation(
            "daf1", "compta1", date(2024, 1, 1), date(2024, 1, 31), active=False
        )
        assert roles_effectifs([], [delegation], {"daf1": [Role.DAF]}, date(2024, 1, 2)) == set()

    def test_niveaux_autorises(self):
        assert niveaux_autorises([Role.COMPTABLE]) == {1}
        assert niveaux_autorises([Role.DAF]) == {1, 2}
        assert niveaux_autorises([Role.AUDITEUR]) == set()

    def test_self_delegation_rejected(self):
        with pytest.raises(ErreurValidation):
            valider_delegation(Delegation("a", "a", date(2024, 1, 1), date(2024, 1, 2)))

    def test_end_before_start_rejected(self):
        with pytest.raises(ErreurValidation):
            valider_delegation(Delegation("a", "b", date(2024, 1, 2), date(2024, 1, 1)))


class TestPeutApprouver:
    """Tests for the first-pending-level role check."""

    def _historique(self):
        return [
            EtapeApprobation(1, 1, Role.COMPTABLE, statut=StatutEtape.APPROVED),
            EtapeApprobation(1, 2, Role.DAF),
        ]

    def test_pending_level(self):
        assert etape_en_attente(self._historique()).niveau == 2

    def test_role_matches_pending_level(self):
        assert peut_approuver({Role.DAF}, self._historique())

    def test_role_of_approved_level_not_enough(self):
        assert not peut_approuver({Role.COMPTABLE}, self._historique())

    def test_nothing_pending(self):
        assert not peut_approuver({Role.DG}, [])
