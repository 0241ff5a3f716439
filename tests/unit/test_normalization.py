"""Tests for domain.normalization — supplier name and IBAN normalization."""

from domain.normalization import normalize_iban, normalize_supplier


class TestNormalizeSupplier:
    """Tests for normalize_supplier."""

    def test_strip_sa(self):
        assert normalize_supplier("Acme SA") == "ACME"

    def test_strip_sarl(self):
        assert normalize_supplier("Dupont SARL") == "DUPONT"

    def test_strip_sas_with_dot(self):
        assert normalize_supplier("Transport SAS.") == "TRANSPORT"

    def test_strip_accents(self):
        assert normalize_supplier("Société Générale") == "SOCIETE GENERALE"

    def test_extra_spaces(self):
        assert normalize_supplier("  Acme   Corp   SA  ") == "ACME CORP"

    def test_suffix_inside_word_kept(self):
        assert normalize_supplier("Sagem") == "SAGEM"

    def test_none(self):
        assert normalize_supplier(None) == ""


class TestNormalizeIban:
    """Tests for normalize_iban."""

    def test_strip_spaces_and_uppercase(self):
        assert normalize_iban("fr76 3000 6000 0112 3456 7890 189") == "FR7630006000011234567890189"

    def test_separators(self):
        assert normalize_iban("CI93-CI00-0001") == "CI93CI000001"

    def test_empty(self):
        assert normalize_iban("") is None
        assert normalize_iban(" - ") is None
