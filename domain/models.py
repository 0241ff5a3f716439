"""Domain models — pure Python, zero external dependencies.

Only stdlib imports allowed: dataclasses, datetime, enum.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class StatutFacture(Enum):
    """Workflow status of a supplier invoice."""

    NOUVELLE = "nouvelle"
    A_VALIDER_EXTRACTION = "a_valider_extraction"
    A_RAPPROCHER = "a_rapprocher"
    A_APPROUVER = "a_approuver"
    EXCEPTION = "exception"
    LITIGE = "litige"
    PRETE_COMPTABILISATION = "prete_comptabilisation"
    COMPTABILISEE = "comptabilisee"


class StatutRapprochement(Enum):
    """Bucket of the invoice / purchase order / delivery note matching score."""

    MATCH_AUTOMATIQUE = "match_automatique"
    MATCH_PROBABLE = "match_probable"
    MATCH_INCERTAIN = "match_incertain"
    AUCUN_MATCH = "aucun_match"


class StatutEtape(Enum):
    """Status of one approval level."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(Enum):
    """Application roles."""

    ADMIN = "admin"
    DAF = "daf"
    DG = "dg"
    COMPTABLE = "comptable"
    AUDITEUR = "auditeur"


ROLE_LABELS = {
    Role.COMPTABLE: "Comptable",
    Role.DAF: "DAF",
    Role.DG: "DG",
    Role.ADMIN: "Admin",
    Role.AUDITEUR: "Auditeur",
}


class StatutLitige(Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class CategorieLitige(Enum):
    AMOUNT_MISMATCH = "amount_mismatch"
    QUALITY_ISSUE = "quality_issue"
    DELIVERY_ISSUE = "delivery_issue"
    DUPLICATE = "duplicate"
    MISSING_PO = "missing_po"
    OTHER = "other"


class PrioriteLitige(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TypeCommunication(Enum):
    INTERNAL_NOTE = "internal_note"
    EMAIL_SENT = "email_sent"
    EMAIL_RECEIVED = "email_received"
    CALL = "call"
    MEETING = "meeting"


class StatutTransaction(Enum):
    """Reconciliation status of a bank transaction."""

    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


class SensTransaction(Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class StatutImport(Enum):
    """Status of an ingestion log entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    DUPLICATE = "duplicate"


# ── Value Objects ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChampOcr:
    """One extracted field with the model's confidence (0..1)."""

    valeur: str | float | None = None
    confiance: float = 0.0

    def to_dict(self) -> dict:
        return {"value": self.valeur, "confidence": self.confiance}


# ── Entities ────────────────────────────────────────────────────────────


@dataclass
class Fournisseur:
    """A supplier / vendor."""

    nom: str
    identifiant: str | None = None
    email: str | None = None
    telephone: str | None = None
    adresse: str | None = None
    iban: str | None = None
    bic: str | None = None
    identifiant_fiscal: str | None = None
    numero_registre: str | None = None
    pays: str | None = None
    delai_paiement_jours: int = 30
    est_critique: bool = False
    notes: str | None = None
    id: int | None = None


@dataclass
class BonCommande:
    """A purchase order (BC)."""

    numero: str
    montant_ttc: float | None = None
    montant_ht: float | None = None
    montant_tva: float | None = None
    devise: str = "EUR"
    fournisseur_id: int | None = None
    date_commande: date | None = None
    statut: str = "actif"
    id: int | None = None


@dataclass
class BonLivraison:
    """A delivery note (BL)."""

    numero: str
    bon_commande_id: int | None = None
    fournisseur_id: int | None = None
    date_livraison: date | None = None
    id: int | None = None


@dataclass
class Facture:
    """A supplier invoice going through extraction, matching and approval."""

    statut: StatutFacture = StatutFacture.NOUVELLE
    fichier: str | None = None
    nom_fichier: str | None = None
    numero_facture: str | None = None
    nom_fournisseur_extrait: str | None = None
    date_emission: date | None = None
    date_echeance: date | None = None
    montant_ht: float | None = None
    montant_tva: float | None = None
    montant_ttc: float | None = None
    devise: str = "EUR"
    numero_bc_extrait: str | None = None
    numero_bl_extrait: str | None = None
    iban_extrait: str | None = None
    champs_ocr: dict = field(default_factory=dict)
    score_confiance_ocr: float | None = None
    fournisseur_id: int | None = None
    bon_commande_id: int | None = None
    bon_livraison_id: int | None = None
    score_rapprochement: float | None = None
    statut_rapprochement: StatutRapprochement | None = None
    a_anomalies: bool = False
    types_anomalies: list[str] = field(default_factory=list)
    regle_approbation_id: int | None = None
    niveau_approbation_courant: int | None = None
    niveaux_approbation_requis: int | None = None
    approuve_par: str | None = None
    approuve_le: datetime | None = None
    motif_rejet: str | None = None
    date_reception: date | None = None
    id: int | None = None


@dataclass
class RegleApprobation:
    """Priority-ordered predicate mapping an amount range to 1..3 role levels."""

    nom: str
    niveaux_requis: int = 1
    montant_min: float | None = 0.0
    montant_max: float | None = None
    fournisseur_critique: bool = False
    role_niveau_1: Role | None = None
    role_niveau_2: Role | None = None
    role_niveau_3: Role | None = None
    priorite: int = 0
    active: bool = True
    description: str | None = None
    id: int | None = None

    def role_pour_niveau(self, niveau: int) -> Role | None:
        return getattr(self, f"role_niveau_{niveau}", None)


@dataclass
class EtapeApprobation:
    """One (invoice, level) row of the approval history."""

    facture_id: int
    niveau: int
    role_requis: Role
    statut: StatutEtape = StatutEtape.PENDING
    approuve_par: str | None = None
    approuve_le: datetime | None = None
    commentaire: str | None = None
    id: int | None = None


@dataclass
class Delegation:
    """Temporary transfer of a user's approval roles to another user."""

    delegant_id: str
    delegataire_id: str
    date_debut: date
    date_fin: date
    motif: str | None = None
    active: bool = True
    id: int | None = None


@dataclass
class EntreeAudit:
    """Audit trail entry written by every business mutation."""

    type_entite: str
    entite_id: int
    action: str
    changements: dict = field(default_factory=dict)
    effectue_par: str | None = None
    horodatage: datetime | None = None
    id: int | None = None


# ── Result Value Objects ────────────────────────────────────────────────


@dataclass(frozen=True)
class InitialisationApprobation:
    """Read-only result of approval initialization."""

    regle: RegleApprobation
    niveaux_requis: int
    etapes: list[EtapeApprobation]


@dataclass(frozen=True)
class ResultatApprobation:
    """Invoice state after one level was approved."""

    niveau: int
    est_dernier: bool
    niveau_courant: int
    statut: StatutFacture


@dataclass(frozen=True)
class ResultatRapprochement:
    """Read-only result of the invoice / PO / BL / supplier matching."""

    score: float
    statut: StatutRapprochement
    anomalies: list[str]
    details: dict
    fournisseur_id: int | None = None
    bon_commande_id: int | None = None
    bon_livraison_id: int | None = None


@dataclass(frozen=True)
class ResultatOcr:
    """Parsed model answer: the twelve fields and their mean confidence."""

    champs: dict[str, ChampOcr]
    confiance_moyenne: float
    texte_brut: str = ""

    def champs_extraits(self) -> int:
        return sum(1 for c in self.champs.values() if c.valeur is not None)


@dataclass(frozen=True)
class SuggestionRapprochementBancaire:
    """Candidate invoice for a bank transaction, with the reasons of its score."""

    facture_id: int
    score: int
    raisons: list[str]
