"""Tests for the OCR field JSON schema."""

from facturation.data.ocr_schema import champ_valide


class TestChampOcrSchema:
    def test_valid_field(self):
        assert champ_valide({"value": "F-1", "confidence": 0.9})
        assert champ_valide({"value": None, "confidence": 0})

    def test_confidence_out_of_range(self):
        assert not champ_valide({"value": "F-1", "confidence": 1.5})

    def test_missing_confidence(self):
        assert not champ_valide({"value": "F-1"})

    def test_not_an_object(self):
        assert not champ_valide("F-1")
