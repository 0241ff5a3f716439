"""Tests for domain.ocr_service — stored file to extracted invoice fields."""

import base64
import json
from datetime import date

import pytest

from domain.exceptions import LimiteRequetesAtteinte
from domain.models import Facture, ResultatRapprochement, StatutFacture, StatutRapprochement
from domain.ocr_service import OcrService, changements_facture, messages_extraction, url_donnees
from domain.ocr_parsing import analyser_reponse

REPONSE = json.dumps({
    "supplier_name": {"value": "ACME SA", "confidence": 0.95},
    "invoice_number": {"value": "F-2024-001", "confidence": 0.9},
    "issue_date": {"value": "2024-03-01", "confidence": 0.9},
    "amount_ttc": {"value": "1 200,00", "confidence": 0.8},
    "po_number": {"value": "BC-001", "confidence": 0.7},
})


def _rapprochement(facture_id):
    return ResultatRapprochement(
        score=0.9, statut=StatutRapprochement.MATCH_AUTOMATIQUE, anomalies=[], details={},
    )


class TestMessages:
    """Tests for the data URL and the extraction messages."""

    def test_url_donnees_guesses_mime(self):
        url = url_donnees(b"abc", "scan.png")
        assert url == "data:image/png;base64," + base64.b64encode(b"abc").decode()

    def test_url_donnees_defaults_to_pdf(self):
        assert url_donnees(b"abc", "sans_extension").startswith("data:application/pdf;base64,")

    def test_messages_extraction(self):
        messages = messages_extraction("data:x")
        assert messages[0]["role"] == "system"
        assert messages[1]["content"][1] == {"type": "image_url", "image_url": {"url": "data:x"}}


class TestChangementsFacture:
    """Tests for the invoice columns written back from OCR."""

    def test_coerces_values(self):
        changements = changements_facture(analyser_reponse(REPONSE))
        assert changements["nom_fournisseur_extrait"] == "ACME SA"
        assert changements["date_emission"] == date(2024, 3, 1)
        assert changements["montant_ttc"] == pytest.approx(1200.0)
        assert changements["devise"] == "EUR"
        assert changements["statut"] is StatutFacture.A_VALIDER_EXTRACTION
        assert changements["champs_ocr"]["po_number"] == {"value": "BC-001", "confidence": 0.7}

    def test_iban_normalized(self):
        reponse = json.dumps({"iban": {"value": "fr76 3000-6000 0112", "confidence": 0.9}})
        assert changements_facture(analyser_reponse(reponse))["iban_extrait"] == "FR763000600000112"

    def test_missing_iban(self):
        assert changements_facture(analyser_reponse(REPONSE))["iban_extrait"] is None


class TestOcrService:
    """Tests for OcrService.traiter."""

    def _service(self, depot_factures, stockage, passerelle, audit, rapprocher=None):
        stockage.enregistrer(b"%PDF-1.4", "f.pdf")
        factures = depot_factures(Facture(id=1, statut=StatutFacture.NOUVELLE))
        service = OcrService(
            factures, stockage, passerelle, audit,
            declencher_rapprochement=rapprocher, modele="modele-test", max_tokens=500,
        )
        return service, factures

    def test_writes_fields_back(self, depot_factures, stockage, passerelle, audit):
        gateway = passerelle(REPONSE)
        service, factures = self._service(depot_factures, stockage, gateway, audit)
        resultat, rapprochement = service.traiter(1, "f.pdf")

        facture = factures.get(1)
        assert facture.numero_facture == "F-2024-001"
        assert facture.statut is StatutFacture.A_VALIDER_EXTRACTION
        assert facture.score_confiance_ocr == pytest.approx(resultat.confiance_moyenne)
        assert rapprochement is None
        assert gateway.appels[0]["modele"] == "modele-test"
        assert gateway.appels[0]["max_tokens"] == 500
        assert audit.entrees[0].action == "ocr_processed"
        assert audit.entrees[0].changements["fields_extracted"] == 5

    def test_triggers_matching_when_po_found(self, depot_factures, stockage, passerelle, audit):
        appels = []

        def rapprocher(facture_id):
            appels.append(facture_id)
            return _rapprochement(facture_id)

        service, _ = self._service(depot_factures, stockage, passerelle(REPONSE), audit, rapprocher)
        _, rapprochement = service.traiter(1, "f.pdf")
        assert appels == [1]
        assert rapprochement.statut is StatutRapprochement.MATCH_AUTOMATIQUE

    def test_no_matching_without_reference(self, depot_factures, stockage, passerelle, audit):
        appels = []
        reponse = json.dumps({"supplier_name": {"value": "ACME", "confidence": 0.9}})
        service, _ = self._service(
            depot_factures, stockage, passerelle(reponse), audit, appels.append
        )
        service.traiter(1, "f.pdf")
        assert appels == []

    def test_matching_failure_keeps_ocr(self, depot_factures, stockage, passerelle, audit):
        def rapprocher(facture_id):
            raise RuntimeError("base indisponible")

        service, factures = self._service(
            depot_factures, stockage, passerelle(REPONSE), audit, rapprocher
        )
        resultat, rapprochement = service.traiter(1, "f.pdf")
        assert rapprochement is None
        assert factures.get(1).numero_facture == "F-2024-001"

    def test_gateway_error_propagates(self, depot_factures, stockage, passerelle, audit):
        service, factures = self._service(
            depot_factures, stockage, passerelle(erreur=LimiteRequetesAtteinte()), audit
        )
        with pytest.raises(LimiteRequetesAtteinte):
            service.traiter(1, "f.pdf")
        assert factures.get(1).statut is StatutFacture.A_VALIDER_EXTRACTION
        assert audit.entrees == []
