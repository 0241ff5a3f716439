"""Tests for domain.matching_service — supplier, PO and BL lookups."""

import pytest

from domain.matching_service import MatchingService
from domain.models import (
    BonCommande,
    BonLivraison,
    Facture,
    Fournisseur,
    StatutFacture,
    StatutRapprochement,
)
from domain.ports import BonCommandeRepository, BonLivraisonRepository, FournisseurRepository


class FakeFournisseurs(FournisseurRepository):
    def __init__(self, fournisseurs=(), echec_creation=False):
        self.fournisseurs = list(fournisseurs)
        self.echec_creation = echec_creation

    def get(self, fournisseur_id):
        return next((f for f in self.fournisseurs if f.id == fournisseur_id), None)

    def rechercher(self, nom):
        return [
            f for f in self.fournisseurs
            if nom.lower() in f.nom.lower() or f.identifiant == nom
        ]

    def creer(self, fournisseur):
        if self.echec_creation:
            raise RuntimeError("contrainte violée")
        fournisseur.id = 100 + len(self.fournisseurs)
        self.fournisseurs.append(fournisseur)
        return fournisseur


class FakeBonsCommande(BonCommandeRepository):
    def __init__(self, bons=()):
        self.bons = list(bons)

    def get(self, bon_commande_id):
        return next((b for b in self.bons if b.id == bon_commande_id), None)

    def trouver_par_numero(self, numero):
        return next((b for b in self.bons if b.numero == numero), None)

    def rechercher_approchant(self, numero):
        return next((b for b in self.bons if numero.lower() in b.numero.lower()), None)


class FakeBonsLivraison(BonLivraisonRepository):
    def __init__(self, bons=()):
        self.bons = list(bons)

    def trouver_par_numero(self, numero):
        return next((b for b in self.bons if b.numero == numero), None)

    def rechercher_approchant(self, numero):
        return next((b for b in self.bons if numero.lower() in b.numero.lower()), None)


ACME = Fournisseur(id=1, nom="ACME Industries")
BC = BonCommande(id=10, numero="BC-2024-001", fournisseur_id=1, montant_ttc=1200.0)
BL = BonLivraison(id=20, numero="BL-2024-001", bon_commande_id=10, fournisseur_id=1)


def _service(depot_factures, audit, facture, fournisseurs=None, bcs=(BC,), bls=(BL,)):
    factures = depot_factures(facture)
    service = MatchingService(
        factures,
        fournisseurs or FakeFournisseurs([ACME]),
        FakeBonsCommande(bcs),
        FakeBonsLivraison(bls),
        audit,
    )
    return service, factures


class TestRapprochementComplet:
    """Invoice with supplier, PO and BL all found."""

    def test_automatic_match(self, depot_factures, audit):
        facture = Facture(
            id=1, nom_fournisseur_extrait="ACME", numero_bc_extrait="BC-2024-001",
            numero_bl_extrait="BL-2024-001", montant_ttc=1200.0,
        )
        service, factures = _service(depot_factures, audit, facture)
        resultat = service.rapprocher(1)

        assert resultat.score == pytest.approx(0.4 + 0.25 + 0.2 * 0.9 + 0.15)
        assert resultat.statut is StatutRapprochement.MATCH_AUTOMATIQUE
        assert resultat.anomalies == []
        assert (resultat.fournisseur_id, resultat.bon_commande_id, resultat.bon_livraison_id) == (1, 10, 20)
        assert factures.get(1).statut is StatutFacture.A_APPROUVER
        assert audit.actions() == ["matching_completed"]

    def test_amount_difference_flags_anomaly(self, depot_factures, audit):
        facture = Facture(
            id=1, nom_fournisseur_extrait="ACME", numero_bc_extrait="BC-2024-001",
            numero_bl_extrait="BL-2024-001", montant_ttc=1356.0,
        )
        service, factures = _service(depot_factures, audit, facture)
        resultat = service.rapprocher(1)

        assert "amount_difference_13%" in resultat.anomalies
        assert resultat.details["amount_match"]["score"] == 0.2
        assert resultat.statut is StatutRapprochement.MATCH_PROBABLE
        assert factures.get(1).a_anomalies
        assert factures.get(1).statut is StatutFacture.A_RAPPROCHER


class TestRapprochementPartiel:
    """Lookups that fall back or disagree."""

    def test_po_supplier_mismatch(self, depot_factures, audit):
        autre = Fournisseur(id=2, nom="Beta Services")
        facture = Facture(id=1, nom_fournisseur_extrait="Beta", numero_bc_extrait="BC-2024-001")
        service, _ = _service(
            depot_factures, audit, facture, fournisseurs=FakeFournisseurs([ACME, autre])
        )
        resultat = service.rapprocher(1)
        assert "supplier_mismatch_with_po" in resultat.anomalies
        assert resultat.fournisseur_id == 2

    def test_supplier_taken_from_po(self, depot_factures, audit):
        facture = Facture(id=1, numero_bc_extrait="BC-2024-001")
        service, _ = _service(depot_factures, audit, facture)
        assert service.rapprocher(1).fournisseur_id == 1

    def test_fuzzy_po(self, depot_factures, audit):
        facture = Facture(id=1, numero_bc_extrait="2024-001")
        service, _ = _service(depot_factures, audit, facture, bls=())
        resultat = service.rapprocher(1)
        assert resultat.details["po_match"]["method"] == "fuzzy_match"
        assert resultat.details["po_match"]["score"] == 0.7
        assert resultat.bon_commande_id == 10

    def test_po_found_through_delivery_note(self, depot_factures, audit):
        facture = Facture(id=1, numero_bl_extrait="BL-2024-001")
        service, _ = _service(depot_factures, audit, facture)
        resultat = service.rapprocher(1)
        assert resultat.bon_commande_id == 10
        assert resultat.details["po_match"] == {
            "found": True, "score": 0.8, "method": "via_delivery_note",
        }

    def test_delivery_note_of_other_po(self, depot_factures, audit):
        autre_bc = BonCommande(id=11, numero="BC-2024-002", montant_ttc=100.0)
        facture = Facture(id=1, numero_bc_extrait="BC-2024-002", numero_bl_extrait="BL-2024-001")
        service, _ = _service(depot_factures, audit, facture, bcs=(BC, autre_bc))
        assert "po_mismatch_between_invoice_and_bl" in service.rapprocher(1).anomalies


class TestSansReference:
    """Invoices without any PO or BL."""

    def test_no_reference_anomaly_added_after_bucketing(self, depot_factures, audit):
        facture = Facture(id=1, nom_fournisseur_extrait="ACME")
        service, factures = _service(depot_factures, audit, facture)
        resultat = service.rapprocher(1)
        assert resultat.score == pytest.approx(0.18)
        assert resultat.statut is StatutRapprochement.AUCUN_MATCH
        assert resultat.anomalies == ["no_reference_documents"]
        assert factures.get(1).statut is StatutFacture.EXCEPTION

    def test_empty_invoice(self, depot_factures, audit):
        service, _ = _service(depot_factures, audit, Facture(id=1))
        resultat = service.rapprocher(1)
        assert resultat.score == 0
        assert resultat.fournisseur_id is None


class TestCreationFournisseur:
    """Supplier auto-creation from OCR fields."""

    def test_unknown_supplier_created(self, depot_factures, audit):
        fournisseurs = FakeFournisseurs([ACME])
        facture = Facture(
            id=1, nom_fournisseur_extrait="Nouveau Fournisseur",
            iban_extrait="fr76 12-345",
            champs_ocr={"supplier_email": {"value": "contact@nouveau.fr", "confidence": 0.9}},
        )
        service, _ = _service(depot_factures, audit, facture, fournisseurs=fournisseurs)
        resultat = service.rapprocher(1)

        cree = fournisseurs.fournisseurs[-1]
        assert cree.nom == "Nouveau Fournisseur"
        assert cree.iban == "FR7612345"
        assert cree.email == "contact@nouveau.fr"
        assert cree.pays == "CI"
        assert resultat.fournisseur_id == cree.id
        assert resultat.details["supplier_match"]["method"] == "auto_created"
        assert resultat.details["supplier_match"]["score"] == 0.6
        assert "auto_created_from_ocr" in audit.actions()

    def test_creation_failure_is_not_fatal(self, depot_factures, audit):
        facture = Facture(id=1, nom_fournisseur_extrait="Inconnu SARL")
        service, _ = _service(
            depot_factures, audit, facture, fournisseurs=FakeFournisseurs(echec_creation=True)
        )
        resultat = service.rapprocher(1)
        assert resultat.fournisseur_id is None
        assert resultat.details["supplier_match"]["method"] == "auto_create_failed"
