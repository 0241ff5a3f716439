"""In-memory fakes of the domain ports shared by the service tests."""

from dataclasses import replace

import pytest

from domain.exceptions import FactureIntrouvable
from domain.ports import AuditRepository, FactureRepository, PasserelleIAPort, StockagePort


class FakeFactureRepository(FactureRepository):
    def __init__(self, factures=()):
        self.factures = {f.id: f for f in factures}
        self.changements = []

    def get(self, facture_id):
        if facture_id not in self.factures:
            raise FactureIntrouvable(facture_id)
        return self.factures[facture_id]

    def mettre_a_jour(self, facture_id, changements):
        facture = self.get(facture_id)
        self.changements.append((facture_id, changements))
        connus = {k: v for k, v in changements.items() if hasattr(facture, k)}
        self.factures[facture_id] = replace(facture, **connus)


class FakeAuditRepository(AuditRepository):
    def __init__(self):
        self.entrees = []

    def enregistrer(self, entree):
        entree.id = len(self.entrees) + 1
        self.entrees.append(entree)
        return entree

    def actions(self):
        return [e.action for e in self.entrees]


class FakeStockage(StockagePort):
    def __init__(self):
        self.fichiers = {}

    def enregistrer(self, contenu, nom_fichier):
        self.fichiers[nom_fichier] = contenu
        return nom_fichier

    def lire(self, chemin):
        return self.fichiers[chemin]


class FakePasserelle(PasserelleIAPort):
    """Returns canned answers and records the messages it was sent."""

    def __init__(self, reponse="", flux=(b"data: ok\n\n",), erreur=None):
        self.reponse = reponse
        self.flux = list(flux)
        self.erreur = erreur
        self.appels = []

    def completer(self, messages, modele, max_tokens=None):
        self.appels.append({"messages": messages, "modele": modele, "max_tokens": max_tokens})
        if self.erreur:
            raise self.erreur
        return self.reponse

    def completer_flux(self, messages, modele):
        self.appels.append({"messages": messages, "modele": modele})
        if self.erreur:
            raise self.erreur
        return iter(self.flux)


@pytest.fixture
def audit():
    return FakeAuditRepository()


@pytest.fixture
def stockage():
    return FakeStockage()


@pytest.fixture
def depot_factures():
    """Factory: ``depot_factures(facture, ...)`` builds a fake invoice repository."""
    return lambda *factures: FakeFactureRepository(factures)


@pytest.fixture
def passerelle():
    """Factory for a fake AI gateway."""
    return FakePasserelle
