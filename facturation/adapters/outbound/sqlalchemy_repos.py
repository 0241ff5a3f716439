"""SQLAlchemy implementations of domain repository ports.

Each adapter translates between ORM models (sqlalchemy_models) and
pure domain models (domain.models), keeping the domain layer free
of any infrastructure dependency.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from rapidfuzz import fuzz
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from domain.exceptions import FactureIntrouvable
from domain.models import (
    BonCommande as DomainBonCommande,
    BonLivraison as DomainBonLivraison,
    Delegation as DomainDelegation,
    EntreeAudit,
    EtapeApprobation as DomainEtapeApprobation,
    Facture as DomainFacture,
    Fournisseur as DomainFournisseur,
    RegleApprobation as DomainRegleApprobation,
    Role,
    StatutEtape,
    StatutFacture,
    StatutRapprochement,
)
from domain.normalization import normalize_supplier
from domain.ports import (
    AuditRepository,
    BonCommandeRepository,
    BonLivraisonRepository,
    DelegationRepository,
    FactureRepository,
    FournisseurRepository,
    HistoriqueApprobationRepository,
    RegleApprobationRepository,
)
from facturation.adapters.outbound.sqlalchemy_models import (
    BonCommande as OrmBonCommande,
    BonLivraison as OrmBonLivraison,
    Delegation as OrmDelegation,
    EtapeApprobation as OrmEtapeApprobation,
    Facture as OrmFacture,
    Fournisseur as OrmFournisseur,
    JournalAudit,
    RegleApprobation as OrmRegleApprobation,
)


def _role(valeur: str | None) -> Role | None:
    return Role(valeur) if valeur else None


class SqlAlchemyFactureRepository(FactureRepository):
    """SQLAlchemy adapter for the FactureRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, facture_id: int) -> DomainFacture:
        return self._to_domain(self._orm(facture_id))

    def mettre_a_jour(self, facture_id: int, changements: dict) -> None:
        orm = self._orm(facture_id)
        for attribut, valeur in changements.items():
            if not hasattr(OrmFacture, attribut):
                raise ValueError(f"Colonne inconnue: {attribut}")
            setattr(orm, attribut, valeur.value if isinstance(valeur, Enum) else valeur)
        self._session.flush()

    # ── Internal helpers ───────────────────────────────────────────────

    def _orm(self, facture_id: int) -> OrmFacture:
        orm = self._session.get(OrmFacture, facture_id)
        if orm is None:
            raise FactureIntrouvable(facture_id)
        return orm

    @staticmethod
    def _to_domain(orm: OrmFacture) -> DomainFacture:
        """Convert an ORM Facture row to a domain Facture."""
        return DomainFacture(
            id=orm.id,
            statut=StatutFacture(orm.statut),
            fichier=orm.fichier,
            nom_fichier=orm.nom_fichier,
            numero_facture=orm.numero_facture,
            nom_fournisseur_extrait=orm.nom_fournisseur_extrait,
            date_emission=orm.date_emission,
            date_echeance=orm.date_echeance,
            montant_ht=orm.montant_ht,
            montant_tva=orm.montant_tva,
            montant_ttc=orm.montant_ttc,
            devise=orm.devise or "EUR",
            numero_bc_extrait=orm.numero_bc_extrait,
            numero_bl_extrait=orm.numero_bl_extrait,
            iban_extrait=orm.iban_extrait,
            champs_ocr=orm.champs_ocr or {},
            score_confiance_ocr=orm.score_confiance_ocr,
            fournisseur_id=orm.fournisseur_id,
            bon_commande_id=orm.bon_commande_id,
            bon_livraison_id=orm.bon_livraison_id,
            score_rapprochement=orm.score_rapprochement,
            statut_rapprochement=(
                StatutRapprochement(orm.statut_rapprochement)
                if orm.statut_rapprochement else None
            ),
            a_anomalies=bool(orm.a_anomalies),
            types_anomalies=list(orm.types_anomalies or []),
            regle_approbation_id=orm.regle_approbation_id,
            niveau_approbation_courant=orm.niveau_approbation_courant,
            niveaux_approbation_requis=orm.niveaux_approbation_requis,
            approuve_par=orm.approuve_par,
            approuve_le=orm.approuve_le,
            motif_rejet=orm.motif_rejet,
            date_reception=orm.date_reception,
        )


class SqlAlchemyFournisseurRepository(FournisseurRepository):
    """SQLAlchemy adapter for the FournisseurRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ── Queries ────────────────────────────────────────────────────────

    def get(self, fournisseur_id: int) -> DomainFournisseur | None:
        orm = self._session.get(OrmFournisseur, fournisseur_id)
        return self._to_domain(orm) if orm else None

    def rechercher(self, nom: str) -> list[DomainFournisseur]:
        """Name contains *nom* (case-insensitive) or identifier equals it.

        Candidates are ranked by fuzzy similarity of the normalised names.
        """
        stmt = select(OrmFournisseur).where(
            or_(
                OrmFournisseur.nom.ilike(f"%{nom}%"),
                OrmFournisseur.identifiant == nom,
            )
        )
        cible = normalize_supplier(nom)
        candidats = list(self._session.scalars(stmt))
        candidats.sort(
            key=lambda f: fuzz.ratio(normalize_supplier(f.nom), cible), reverse=True
        )
        return [self._to_domain(orm) for orm in candidats]

    # ── Commands ───────────────────────────────────────────────────────

    def creer(self, fournisseur: DomainFournisseur) -> DomainFournisseur:
        """Insert inside a savepoint so a failure leaves the outer transaction usable."""
        orm = OrmFournisseur(
            nom=fournisseur.nom,
            identifiant=fournisseur.identifiant,
            email=fournisseur.email,
            telephone=fournisseur.telephone,
            adresse=fournisseur.adresse,
            iban=fournisseur.iban,
            bic=fournisseur.bic,
            identifiant_fiscal=fournisseur.identifiant_fiscal,
            numero_registre=fournisseur.numero_registre,
            pays=fournisseur.pays,
            delai_paiement_jours=fournisseur.delai_paiement_jours,
            est_critique=fournisseur.est_critique,
            notes=fournisseur.notes,
        )
        with self._session.begin_nested():
            self._session.add(orm)
            self._session.flush()
        fournisseur.id = orm.id
        return fournisseur

    # ── Internal helpers ───────────────────────────────────────────────

    @staticmethod
    def _to_domain(orm: OrmFournisseur) -> DomainFournisseur:
        return DomainFournisseur(
            id=orm.id,
            nom=orm.nom,
            identifiant=orm.identifiant,
            email=orm.email,
            telephone=orm.telephone,
            adresse=orm.adresse,
            iban=orm.iban,
            bic=orm.bic,
            identifiant_fiscal=orm.identifiant_fiscal,
            numero_registre=orm.numero_registre,
            pays=orm.pays,
            delai_paiement_jours=orm.delai_paiement_jours or 30,
            est_critique=bool(orm.est_critique),
            notes=orm.notes,
        )


class SqlAlchemyBonCommandeRepository(BonCommandeRepository):
    """SQLAlchemy adapter for the BonCommandeRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, bon_commande_id: int) -> DomainBonCommande | None:
        orm = self._session.get(OrmBonCommande, bon_commande_id)
        return self._to_domain(orm) if orm else None

    def trouver_par_numero(self, numero: str) -> DomainBonCommande | None:
        stmt = select(OrmBonCommande).where(OrmBonCommande.numero == numero)
        orm = self._session.scalars(stmt).first()
        return self._to_domain(orm) if orm else None

    def rechercher_approchant(self, numero: str) -> DomainBonCommande | None:
        stmt = (
            select(OrmBonCommande)
            .where(OrmBonCommande.numero.ilike(f"%{numero}%"))
            .order_by(OrmBonCommande.id)
        )
        orm = self._session.scalars(stmt).first()
        return self._to_domain(orm) if orm else None

    @staticmethod
    def _to_domain(orm: OrmBonCommande) -> DomainBonCommande:
        return DomainBonCommande(
            id=orm.id,
            numero=orm.numero,
            fournisseur_id=orm.fournisseur_id,
            montant_ht=orm.montant_ht,
            montant_tva=orm.montant_tva,
            montant_ttc=orm.montant_ttc,
            devise=orm.devise or "EUR",
            date_commande=orm.date_commande,
            statut=orm.statut or "actif",
        )


class SqlAlchemyBonLivraisonRepository(BonLivraisonRepository):
    """SQLAlchemy adapter for the BonLivraisonRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def trouver_par_numero(self, numero: str) -> DomainBonLivraison | None:
        stmt = select(OrmBonLivraison).where(OrmBonLivraison.numero == numero)
        orm = self._session.scalars(stmt).first()
        return self._to_domain(orm) if orm else None

    def rechercher_approchant(self, numero: str) -> DomainBonLivraison | None:
        stmt = (
            select(OrmBonLivraison)
            .where(OrmBonLivraison.numero.ilike(f"%{numero}%"))
            .order_by(OrmBonLivraison.id)
        )
        orm = self._session.scalars(stmt).first()
        return self._to_domain(orm) if orm else None

    @staticmethod
    def _to_domain(orm: OrmBonLivraison) -> DomainBonLivraison:
        return DomainBonLivraison(
            id=orm.id,
            numero=orm.numero,
            bon_commande_id=orm.bon_commande_id,
            fournisseur_id=orm.fournisseur_id,
            date_livraison=orm.date_livraison,
        )


class SqlAlchemyRegleApprobationRepository(RegleApprobationRepository):
    """SQLAlchemy adapter for the RegleApprobationRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def lister_actives(self) -> list[DomainRegleApprobation]:
        stmt = (
            select(OrmRegleApprobation)
            .where(OrmRegleApprobation.active.is_(True))
            .order_by(OrmRegleApprobation.priorite.desc())
        )
        return [self.to_domain(orm) for orm in self._session.scalars(stmt)]

    @staticmethod
    def to_domain(orm: OrmRegleApprobation) -> DomainRegleApprobation:
        return DomainRegleApprobation(
            id=orm.id,
            nom=orm.nom,
            description=orm.description,
            montant_min=orm.montant_min,
            montant_max=orm.montant_max,
            fournisseur_critique=bool(orm.fournisseur_critique),
            niveaux_requis=orm.niveaux_requis,
            role_niveau_1=_role(orm.role_niveau_1),
            role_niveau_2=_role(orm.role_niveau_2),
            role_niveau_3=_role(orm.role_niveau_3),
            priorite=orm.priorite or 0,
            active=bool(orm.active),
        )


class SqlAlchemyHistoriqueApprobationRepository(HistoriqueApprobationRepository):
    """SQLAlchemy adapter for the HistoriqueApprobationRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ── Queries ────────────────────────────────────────────────────────

    def lister(self, facture_id: int) -> list[DomainEtapeApprobation]:
        stmt = (
            select(OrmEtapeApprobation)
            .where(OrmEtapeApprobation.facture_id == facture_id)
            .order_by(OrmEtapeApprobation.niveau)
        )
        return [self._to_domain(orm) for orm in self._session.scalars(stmt)]

    # ── Commands ───────────────────────────────────────────────────────

    def ajouter(self, etapes: list[DomainEtapeApprobation]) -> list[DomainEtapeApprobation]:
        orms = [
            OrmEtapeApprobation(
                facture_id=e.facture_id,
                niveau=e.niveau,
                role_requis=e.role_requis.value,
                statut=e.statut.value,
            )
            for e in etapes
        ]
        self._session.add_all(orms)
        self._session.flush()
        for etape, orm in zip(etapes, orms):
            etape.id = orm.id
        return etapes

    def marquer(
        self,
        facture_id: int,
        niveau: int,
        statut: StatutEtape,
        utilisateur_id: str,
        commentaire: str | None = None,
    ) -> None:
        """Update every row of (invoice, level); a missing row is a no-op."""
        stmt = select(OrmEtapeApprobation).where(
            OrmEtapeApprobation.facture_id == facture_id,
            OrmEtapeApprobation.niveau == niveau,
        )
        for orm in self._session.scalars(stmt):
            orm.statut = statut.value
            orm.approuve_par = utilisateur_id
            orm.approuve_le = datetime.now(timezone.utc)
            orm.commentaire = commentaire
        self._session.flush()

    # ── Internal helpers ───────────────────────────────────────────────

    @staticmethod
    def _to_domain(orm: OrmEtapeApprobation) -> DomainEtapeApprobation:
        return DomainEtapeApprobation(
            id=orm.id,
            facture_id=orm.facture_id,
            niveau=orm.niveau,
            role_requis=Role(orm.role_requis),
            statut=StatutEtape(orm.statut),
            approuve_par=orm.approuve_par,
            approuve_le=orm.approuve_le,
            commentaire=orm.commentaire,
        )


class SqlAlchemyDelegationRepository(DelegationRepository):
    """SQLAlchemy adapter for the DelegationRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def lister_recues(self, delegataire_id: str) -> list[DomainDelegation]:
        stmt = select(OrmDelegation).where(OrmDelegation.delegataire_id == delegataire_id)
        return [self.to_domain(orm) for orm in self._session.scalars(stmt)]

    @staticmethod
    def to_domain(orm: OrmDelegation) -> DomainDelegation:
        return DomainDelegation(
            id=orm.id,
            delegant_id=orm.delegant_id,
            delegataire_id=orm.delegataire_id,
            date_debut=orm.date_debut,
            date_fin=orm.date_fin,
            motif=orm.motif,
            active=bool(orm.active),
        )


class SqlAlchemyAuditRepository(AuditRepository):
    """SQLAlchemy adapter for the AuditRepository port."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def enregistrer(self, entree: EntreeAudit) -> EntreeAudit:
        orm = JournalAudit(
            type_entite=entree.type_entite,
            entite_id=entree.entite_id,
            action=entree.action,
            changements=entree.changements,
            effectue_par=entree.effectue_par,
        )
        self._session.add(orm)
        self._session.flush()
        entree.id = orm.id
        entree.horodatage = orm.horodatage
        return entree
