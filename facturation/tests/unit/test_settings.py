"""Tests for configuration loading."""

import pytest

from facturation.settings import load_config


def test_default_config():
    config = load_config()
    assert config["cache"]["ttl"] == 300
    assert config["ingestion"]["taille_max_mo"] == 20
    assert "application/pdf" in config["ingestion"]["types_acceptes"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("AI_GATEWAY_API_KEY", "secret")
    config = load_config()
    assert config["database"]["url"] == "sqlite:///:memory:"
    assert config["ia"]["api_key"] == "secret"


VARIABLES = ("DATABASE_URL", "REDIS_URL", "STORAGE_DIR", "AI_GATEWAY_URL", "AI_GATEWAY_API_KEY")


@pytest.fixture
def sans_environnement(monkeypatch):
    for variable in VARIABLES:
        monkeypatch.delenv(variable, raising=False)


def test_custom_file(tmp_path, sans_environnement):
    chemin = tmp_path / "config.yaml"
    chemin.write_text("cache:\n  ttl: 10\n", encoding="utf-8")
    assert load_config(str(chemin)) == {"cache": {"ttl": 10}}


def test_empty_file(tmp_path, sans_environnement):
    chemin = tmp_path / "vide.yaml"
    chemin.write_text("", encoding="utf-8")
    assert load_config(str(chemin)) == {}
