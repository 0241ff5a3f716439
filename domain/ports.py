"""Domain ports — abstract interfaces for repositories, services, and infrastructure.

Only stdlib (abc) and domain.models imports allowed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from domain.models import (
    BonCommande,
    BonLivraison,
    Delegation,
    EntreeAudit,
    EtapeApprobation,
    Facture,
    Fournisseur,
    RegleApprobation,
    StatutEtape,
)


# ── Repository Ports ──────────────────────────────────────────────────────


class FactureRepository(ABC):
    """Persistence port for invoices."""

    @abstractmethod
    def get(self, facture_id: int) -> Facture:
        """Return the invoice or raise FactureIntrouvable."""

    @abstractmethod
    def mettre_a_jour(self, facture_id: int, changements: dict) -> None:
        """Apply {attribute: value} changes; enum values are stored as strings."""


class FournisseurRepository(ABC):
    """Persistence port for suppliers."""

    @abstractmethod
    def get(self, fournisseur_id: int) -> Fournisseur | None: ...

    @abstractmethod
    def rechercher(self, nom: str) -> list[Fournisseur]:
        """Suppliers whose name contains *nom* or whose identifier equals it, best first."""

    @abstractmethod
    def creer(self, fournisseur: Fournisseur) -> Fournisseur: ...


class BonCommandeRepository(ABC):
    """Persistence port for purchase orders."""

    @abstractmethod
    def get(self, bon_commande_id: int) -> BonCommande | None: ...

    @abstractmethod
    def trouver_par_numero(self, numero: str) -> BonCommande | None: ...

    @abstractmethod
    def rechercher_approchant(self, numero: str) -> BonCommande | None: ...


class BonLivraisonRepository(ABC):
    """Persistence port for delivery notes."""

    @abstractmethod
    def trouver_par_numero(self, numero: str) -> BonLivraison | None: ...

    @abstractmethod
    def rechercher_approchant(self, numero: str) -> BonLivraison | None: ...


class RegleApprobationRepository(ABC):
    """Persistence port for approval rules."""

    @abstractmethod
    def lister_actives(self) -> list[RegleApprobation]:
        """Active rules sorted by descending priority."""


class HistoriqueApprobationRepository(ABC):
    """Persistence port for the approval history."""

    @abstractmethod
    def ajouter(self, etapes: list[EtapeApprobation]) -> list[EtapeApprobation]: ...

    @abstractmethod
    def marquer(
        self,
        facture_id: int,
        niveau: int,
        statut: StatutEtape,
        utilisateur_id: str,
        commentaire: str | None = None,
    ) -> None: ...

    @abstractmethod
    def lister(self, facture_id: int) -> list[EtapeApprobation]:
        """History rows ordered by level."""


class DelegationRepository(ABC):
    """Persistence port for approval delegations."""

    @abstractmethod
    def lister_recues(self, delegataire_id: str) -> list[Delegation]: ...


class AuditRepository(ABC):
    """Persistence port for the audit trail."""

    @abstractmethod
    def enregistrer(self, entree: EntreeAudit) -> EntreeAudit: ...


# ── Infrastructure Ports ──────────────────────────────────────────────────


class CachePort(ABC):
    """Port for key-value caching (Redis, in-memory, etc.)."""

    @abstractmethod
    def get(self, key: str) -> object | None: ...

    @abstractmethod
    def set(self, key: str, value: object, ttl: int = 3600) -> None: ...

    @abstractmethod
    def invalidate(self, prefix: str) -> None: ...


class StockagePort(ABC):
    """Port for invoice file storage."""

    @abstractmethod
    def enregistrer(self, contenu: bytes, nom_fichier: str) -> str:
        """Store the file and return its storage path."""

    @abstractmethod
    def lire(self, chemin: str) -> bytes: ...


class PasserelleIAPort(ABC):
    """Port for the chat-completion gateway (model-agnostic chat API)."""

    @abstractmethod
    def completer(
        self, messages: list[dict], modele: str, max_tokens: int | None = None
    ) -> str:
        """Return the assistant message content."""

    @abstractmethod
    def completer_flux(self, messages: list[dict], modele: str) -> Iterator[bytes]:
        """Yield the raw server-sent event stream."""
