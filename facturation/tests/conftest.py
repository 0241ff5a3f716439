"""Shared fixtures: in-memory database and reference data builders."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from domain.ports import PasserelleIAPort
from facturation.adapters.outbound.sqlalchemy_models import (
    Base,
    BonCommande,
    BonLivraison,
    Facture,
    Fournisseur,
    RegleApprobation,
)


@pytest.fixture
def session():
    """Create an in-memory SQLite session with schema initialized."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    Base.metadata.drop_all(engine)


@pytest.fixture
def referentiel(session):
    """One supplier with a purchase order and its delivery note."""
    fournisseur = Fournisseur(nom="ACME Industries", identifiant="ACM001", iban="FR7612345")
    session.add(fournisseur)
    session.flush()
    bc = BonCommande(
        numero="BC-2024-001", fournisseur_id=fournisseur.id,
        montant_ht=1000.0, montant_tva=200.0, montant_ttc=1200.0,
        date_commande=date(2024, 1, 10),
    )
    session.add(bc)
    session.flush()
    bl = BonLivraison(numero="BL-2024-001", bon_commande_id=bc.id, fournisseur_id=fournisseur.id)
    session.add(bl)
    session.flush()
    return {"fournisseur": fournisseur, "bc": bc, "bl": bl}


@pytest.fixture
def regles(session):
    """Standard approval rules: one level below 10k, two levels above."""
    session.add_all([
        RegleApprobation(
            nom="Standard", montant_min=0, montant_max=10000, niveaux_requis=1,
            role_niveau_1="comptable", priorite=10,
        ),
        RegleApprobation(
            nom="Double signature", montant_min=10000, niveaux_requis=2,
            role_niveau_1="comptable", role_niveau_2="daf", priorite=10,
        ),
    ])
    session.flush()


@pytest.fixture
def nouvelle_facture(session):
    """Factory inserting an invoice; keyword arguments override the columns."""

    def _creer(**colonnes):
        valeurs = {"nom_fichier": "facture.pdf", "statut": "nouvelle", "devise": "EUR"}
        valeurs.update(colonnes)
        facture = Facture(**valeurs)
        session.add(facture)
        session.flush()
        return facture

    return _creer


class PasserelleFactice(PasserelleIAPort):
    """Chat gateway returning a canned answer, or raising *erreur*."""

    def __init__(self, reponse="", flux=(b"data: ok\n\n",), erreur=None):
        self.reponse = reponse
        self.flux = list(flux)
        self.erreur = erreur
        self.appels = []

    def completer(self, messages, modele, max_tokens=None):
        self.appels.append({"messages": messages, "modele": modele})
        if self.erreur:
            raise self.erreur
        return self.reponse

    def completer_flux(self, messages, modele):
        self.appels.append({"messages": messages, "modele": modele})
        if self.erreur:
            raise self.erreur
        return iter(self.flux)


@pytest.fixture
def passerelle():
    return PasserelleFactice
