"""Integration tests for the approval workflow and its administration."""

from datetime import date

import pytest
from sqlalchemy import select

from domain.exceptions import AucuneRegleApprobation, ErreurValidation
from domain.models import Role, StatutEtape
from facturation.adapters.outbound.sqlalchemy_models import (
    EtapeApprobation,
    Facture,
    JournalAudit,
    RegleApprobation,
)
from facturation.data import approbations as admin
from facturation.services import approval_service

JOUR = date(2024, 3, 15)


class TestApprovalChain:
    """ApprovalService over the SQLAlchemy repositories."""

    def test_two_level_chain(self, session, regles, nouvelle_facture):
        facture = nouvelle_facture(statut="a_rapprocher", montant_ttc=15000)
        service = approval_service(session)

        init = service.initialiser(facture.id, 15000)
        assert init.niveaux_requis == 2
        assert facture.statut == "a_approuver"
        assert facture.niveau_approbation_courant == 1

        service.approuver(facture.id, 1, "compta1")
        assert facture.statut == "a_approuver"
        assert facture.niveau_approbation_courant == 2

        service.approuver(facture.id, 2, "daf1", "OK")
        assert facture.statut == "prete_comptabilisation"
        assert facture.approuve_par == "daf1"
        etapes = service.historique(facture.id)
        assert [e.statut for e in etapes] == [StatutEtape.APPROVED, StatutEtape.APPROVED]

        actions = session.scalars(select(JournalAudit.action)).all()
        assert actions == ["approval_initialized", "approved", "approved"]

    def test_rejection(self, session, regles, nouvelle_facture):
        facture = nouvelle_facture(statut="a_rapprocher")
        service = approval_service(session)
        service.initialiser(facture.id, 500)
        service.rejeter(facture.id, 1, "compta1", "Hors budget")
        assert facture.statut == "exception"
        assert facture.motif_rejet == "Hors budget"

    def test_no_rule_writes_nothing(self, session, nouvelle_facture):
        facture = nouvelle_facture(statut="a_rapprocher")
        with pytest.raises(AucuneRegleApprobation):
            approval_service(session).initialiser(facture.id, 500)
        assert facture.statut == "a_rapprocher"
        assert session.scalars(select(EtapeApprobation)).all() == []


class TestRules:
    """Tests for approval rule administration."""

    def test_create_rule(self, session):
        regle = admin.create_rule(
            session, nom="DG", montant_min=50000, niveaux_requis=3,
            role_niveau_1="comptable", role_niveau_2="daf", role_niveau_3="dg",
        )
        assert regle.id is not None
        assert regle.role_niveau_3 == "dg"

    def test_create_invalid_rule(self, session):
        with pytest.raises(ErreurValidation):
            admin.create_rule(session, nom="Incomplète", niveaux_requis=2, role_niveau_1="comptable")

    def test_unknown_field(self, session):
        with pytest.raises(ErreurValidation):
            admin.create_rule(session, nom="x", role_niveau_1="daf", couleur="rouge")

    @pytest.mark.parametrize("champs", [
        {"role_niveau_1": "stagiaire"},
        {"role_niveau_1": "comptable", "niveaux_requis": "deux"},
        {"role_niveau_1": "comptable", "niveaux_requis": None},
        {"role_niveau_1": "comptable", "montant_min": "beaucoup"},
        {"role_niveau_1": "comptable", "priorite": True},
        {"role_niveau_1": "comptable", "active": "oui"},
    ])
    def test_invalid_field_values(self, session, champs):
        with pytest.raises(ErreurValidation):
            admin.create_rule(session, nom="x", **champs)

    def test_integer_amounts_stored_as_float(self, session):
        regle = admin.create_rule(
            session, nom="x", role_niveau_1="comptable", montant_min=100, montant_max=2000
        )
        assert (regle.montant_min, regle.montant_max) == (100.0, 2000.0)

    def test_lowering_levels_clears_roles(self, session):
        regle = admin.create_rule(
            session, nom="Deux", niveaux_requis=2, role_niveau_1="comptable", role_niveau_2="daf"
        )
        admin.update_rule(session, regle.id, niveaux_requis=1)
        assert regle.role_niveau_2 is None

    def test_list_and_delete(self, session, regles):
        regle = admin.create_rule(session, nom="Inactive", role_niveau_1="daf", active=False)
        assert len(admin.list_rules(session)) == 2
        assert len(admin.list_rules(session, include_inactive=True)) == 3
        admin.delete_rule(session, regle.id)
        assert session.get(RegleApprobation, regle.id) is None


class TestRolesAndQueue:
    """Tests for roles, delegations and the approval queue."""

    def test_set_roles_replaces(self, session):
        admin.set_user_roles(session, "u1", [Role.COMPTABLE, Role.COMPTABLE])
        admin.set_user_roles(session, "u1", [Role.DAF])
        assert admin.get_user_roles(session, "u1") == [Role.DAF]

    def test_delegation_extends_roles(self, session):
        admin.set_user_roles(session, "daf1", [Role.DAF])
        admin.set_user_roles(session, "c1", [Role.COMPTABLE])
        admin.create_delegation(session, "daf1", "c1", date(2024, 3, 1), date(2024, 3, 31), "Congés")
        assert admin.effective_roles(session, "c1", JOUR) == {Role.COMPTABLE, Role.DAF}
        assert admin.effective_roles(session, "c1", date(2024, 4, 1)) == {Role.COMPTABLE}

    def test_deactivated_delegation(self, session):
        admin.set_user_roles(session, "daf1", [Role.DAF])
        delegation = admin.create_delegation(session, "daf1", "c1", date(2024, 3, 1), date(2024, 3, 31))
        admin.deactivate_delegation(session, delegation.id)
        assert admin.effective_roles(session, "c1", JOUR) == set()

    def test_invalid_delegation(self, session):
        with pytest.raises(ErreurValidation):
            admin.create_delegation(session, "u1", "u1", JOUR, JOUR)

    def test_queue_by_level(self, session, regles, nouvelle_facture):
        service = approval_service(session)
        petite = nouvelle_facture(statut="a_rapprocher")
        grosse = nouvelle_facture(statut="a_rapprocher")
        service.initialiser(petite.id, 500)
        service.initialiser(grosse.id, 20000)
        service.approuver(grosse.id, 1, "c1")

        admin.set_user_roles(session, "c1", [Role.COMPTABLE])
        admin.set_user_roles(session, "daf1", [Role.DAF])
        assert {n: [f.id for f in fs] for n, fs in admin.approval_queue(session, "c1", JOUR).items()} == {
            1: [petite.id],
        }
        file_daf = admin.approval_queue(session, "daf1", JOUR)
        assert [f.id for f in file_daf[2]] == [grosse.id]
        assert admin.approval_queue(session, "inconnu", JOUR) == {}

    def test_can_approve_pending_level(self, session, regles, nouvelle_facture):
        facture = nouvelle_facture(statut="a_rapprocher")
        approval_service(session).initialiser(facture.id, 20000)
        admin.set_user_roles(session, "c1", [Role.COMPTABLE])
        admin.set_user_roles(session, "daf1", [Role.DAF])
        assert admin.can_approve(session, "c1", facture.id, JOUR)
        assert not admin.can_approve(session, "daf1", facture.id, JOUR)

    def test_level_labels(self):
        assert admin.libelle_niveau(2) == "Niveau 2 - DAF"
        assert admin.libelle_niveau(4) == "Niveau 4"


def test_facture_row_untouched_by_queue(session, nouvelle_facture):
    facture = nouvelle_facture(statut="a_approuver")
    admin.set_user_roles(session, "c1", [Role.COMPTABLE])
    file = admin.approval_queue(session, "c1", JOUR)
    assert [f.id for f in file[1]] == [facture.id]
    assert session.get(Facture, facture.id).statut == "a_approuver"
