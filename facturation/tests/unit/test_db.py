"""Tests for database URL resolution and session handling."""

import os

import pytest
from sqlalchemy import inspect

from facturation.adapters.outbound.sqlalchemy_models import Fournisseur
from facturation.data.db import get_engine, init_db, resolve_url, session_scope


class TestResolveUrl:
    def test_relative_sqlite_anchored_in_package(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        url = resolve_url("sqlite:///data/test_resolve.db")
        chemin = url.removeprefix("sqlite:///")
        assert os.path.isabs(chemin)
        assert chemin.endswith(os.path.join("facturation", "data", "test_resolve.db"))

    def test_absolute_path_untouched(self, tmp_path):
        fichier = tmp_path / "x.db"
        assert resolve_url(f"sqlite:///{fichier}") == f"sqlite:///{fichier}"

    def test_memory_untouched(self):
        assert resolve_url("sqlite:///:memory:") == "sqlite:///:memory:"

    def test_memory_shorthand_untouched(self):
        assert resolve_url("sqlite://") == "sqlite://"

    def test_relative_keeps_driver_and_query(self):
        url = resolve_url("sqlite+pysqlite:///data/test_resolve.db?timeout=5")
        assert url.startswith("sqlite+pysqlite:////")
        assert url.endswith(os.path.join("data", "test_resolve.db") + "?timeout=5")

    def test_environment_fallback(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
        assert resolve_url() == f"sqlite:///{tmp_path / 'env.db'}"

    def test_other_backends_untouched(self):
        url = "postgresql://user:pw@localhost/factures"
        assert resolve_url(url) == url


class TestSessionScope:
    def test_init_db_creates_tables(self, tmp_path):
        engine = init_db(get_engine(f"sqlite:///{tmp_path / 'f.db'}"))
        tables = inspect(engine).get_table_names()
        assert {"factures", "fournisseurs", "litiges"} <= set(tables)

    def test_commit_on_success(self, tmp_path):
        engine = init_db(get_engine(f"sqlite:///{tmp_path / 'f.db'}"))
        with session_scope(engine) as session:
            session.add(Fournisseur(nom="ACME"))
        with session_scope(engine) as session:
            assert session.query(Fournisseur).count() == 1

    def test_rollback_on_error(self, tmp_path):
        engine = init_db(get_engine(f"sqlite:///{tmp_path / 'f.db'}"))
        with pytest.raises(RuntimeError):
            with session_scope(engine) as session:
                session.add(Fournisseur(nom="ACME"))
                session.flush()
                raise RuntimeError("boom")
        with session_scope(engine) as session:
            assert session.query(Fournisseur).count() == 0
