from datetime import date, datetime, timezone
from sqlalchemy import (
    Boolean, Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Index, JSON,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _now():
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Fournisseur(Base):
    __tablename__ = "fournisseurs"

    id = Column(Integer, primary_key=True)
    nom = Column(String, nullable=False)
    identifiant = Column(String)
    email = Column(String)
    telephone = Column(String)
    adresse = Column(Text)
    iban = Column(String)
    bic = Column(String)
    identifiant_fiscal = Column(String)
    numero_registre = Column(String)
    pays = Column(String)
    delai_paiement_jours = Column(Integer, default=30)
    est_critique = Column(Boolean, default=False)
    notes = Column(Text)
    score_risque = Column(Integer)
    nb_factures = Column(Integer, default=0)
    nb_factures_litige = Column(Integer, default=0)
    nb_retards_paiement = Column(Integer, default=0)
    cree_le = Column(DateTime, default=_now)

    factures = relationship("Facture", back_populates="fournisseur")
    bons_commande = relationship("BonCommande", back_populates="fournisseur")

    __table_args__ = (
        Index("idx_fournisseurs_nom", "nom"),
        Index("idx_fournisseurs_identifiant", "identifiant"),
    )


class BonCommande(Base):
    __tablename__ = "bons_commande"

    id = Column(Integer, primary_key=True)
    numero = Column(String, nullable=False, unique=True)
    fournisseur_id = Column(Integer, ForeignKey("fournisseurs.id"))
    montant_ht = Column(Float, default=0)
    montant_tva = Column(Float, default=0)
    montant_ttc = Column(Float, default=0)
    devise = Column(String, default="EUR")
    description = Column(Text)
    date_commande = Column(Date, nullable=False)
    date_livraison_prevue = Column(Date)
    statut = Column(String, default="actif")
    cree_le = Column(DateTime, default=_now)

    fournisseur = relationship("Fournisseur", back_populates="bons_commande")
    bons_livraison = relationship("BonLivraison", back_populates="bon_commande")


class BonLivraison(Base):
    __tablename__ = "bons_livraison"

    id = Column(Integer, primary_key=True)
    numero = Column(String, nullable=False, unique=True)
    bon_commande_id = Column(Integer, ForeignKey("bons_commande.id"))
    fournisseur_id = Column(Integer, ForeignKey("fournisseurs.id"))
    date_livraison = Column(Date)
    description = Column(Text)
    recu_par = Column(String)
    cree_le = Column(DateTime, default=_now)

    bon_commande = relationship("BonCommande", back_populates="bons_livraison")


class Facture(Base):
    __tablename__ = "factures"

    id = Column(Integer, primary_key=True)
    # Fichier source
    fichier = Column(String)
    nom_fichier = Column(String)
    hash_fichier = Column(String, unique=True)
    taille_fichier = Column(Integer)
    source = Column(String, default="upload")
    statut = Column(String, nullable=False, default="nouvelle")
    date_reception = Column(Date, default=date.today)
    # Extraction OCR
    champs_ocr = Column(JSON)
    score_confiance_ocr = Column(Float)  # moyenne 0..1
    texte_ocr_brut = Column(Text)
    numero_facture = Column(String)
    nom_fournisseur_extrait = Column(String)
    date_emission = Column(Date)
    date_echeance = Column(Date)
    montant_ht = Column(Float)
    montant_tva = Column(Float)
    montant_ttc = Column(Float)
    devise = Column(String, default="EUR")
    numero_bc_extrait = Column(String)
    numero_bl_extrait = Column(String)
    iban_extrait = Column(String)
    # Rapprochement
    fournisseur_id = Column(Integer, ForeignKey("fournisseurs.id"))
    bon_commande_id = Column(Integer, ForeignKey("bons_commande.id"))
    bon_livraison_id = Column(Integer, ForeignKey("bons_livraison.id"))
    score_rapprochement = Column(Float)  # 0..1
    statut_rapprochement = Column(String)
    details_rapprochement = Column(JSON)
    a_anomalies = Column(Boolean, default=False)
    types_anomalies = Column(JSON)
    details_anomalies = Column(JSON)
    # Approbation
    regle_approbation_id = Column(Integer, ForeignKey("regles_approbation.id"))
    niveau_approbation_courant = Column(Integer)
    niveaux_approbation_requis = Column(Integer)
    approuve_par = Column(String)
    approuve_le = Column(DateTime)
    motif_rejet = Column(Text)
    # Comptabilité
    reference_comptable = Column(String)
    exportee_le = Column(DateTime)
    cree_le = Column(DateTime, default=_now)
    modifie_le = Column(DateTime, default=_now, onupdate=_now)

    fournisseur = relationship("Fournisseur", back_populates="factures")
    bon_commande = relationship("BonCommande")
    bon_livraison = relationship("BonLivraison")
    historique = relationship(
        "EtapeApprobation", back_populates="facture", order_by="EtapeApprobation.niveau"
    )
    litiges = relationship("Litige", back_populates="facture")

    __table_args__ = (
        Index("idx_factures_statut", "statut"),
        Index("idx_factures_fournisseur", "fournisseur_id"),
        Index("idx_factures_echeance", "date_echeance"),
    )


class RegleApprobation(Base):
    __tablename__ = "regles_approbation"

    id = Column(Integer, primary_key=True)
    nom = Column(String, nullable=False)
    description = Column(Text)
    montant_min = Column(Float, default=0)
    montant_max = Column(Float)  # NULL = sans plafond
    fournisseur_critique = Column(Boolean, default=False)
    niveaux_requis = Column(Integer, nullable=False, default=1)
    role_niveau_1 = Column(String)
    role_niveau_2 = Column(String)
    role_niveau_3 = Column(String)
    priorite = Column(Integer, default=0)
    active = Column(Boolean, default=True)
    cree_le = Column(DateTime, default=_now)


class EtapeApprobation(Base):
    __tablename__ = "historique_approbation"

    id = Column(Integer, primary_key=True)
    facture_id = Column(Integer, ForeignKey("factures.id"), nullable=False)
    niveau = Column(Integer, nullable=False)
    role_requis = Column(String, nullable=False)
    statut = Column(String, nullable=False, default="pending")
    approuve_par = Column(String)
    approuve_le = Column(DateTime)
    commentaire = Column(Text)
    cree_le = Column(DateTime, default=_now)

    facture = relationship("Facture", back_populates="historique")

    __table_args__ = (
        Index("idx_historique_facture_niveau", "facture_id", "niveau"),
    )


class Litige(Base):
    __tablename__ = "litiges"

    id = Column(Integer, primary_key=True)
    facture_id = Column(Integer, ForeignKey("factures.id"), nullable=False)
    categorie = Column(String, nullable=False, default="other")
    description = Column(Text, nullable=False)
    statut = Column(String, nullable=False, default="open")
    priorite = Column(String, nullable=False, default="medium")
    cree_par = Column(String)
    attribue_a = Column(String)
    resolution = Column(Text)
    resolu_par = Column(String)
    resolu_le = Column(DateTime)
    cree_le = Column(DateTime, default=_now)
    modifie_le = Column(DateTime, default=_now, onupdate=_now)

    facture = relationship("Facture", back_populates="litiges")
    communications = relationship(
        "CommunicationLitige", back_populates="litige", cascade="all, delete-orphan",
        order_by="CommunicationLitige.cree_le",
    )


class CommunicationLitige(Base):
    __tablename__ = "communications_litige"

    id = Column(Integer, primary_key=True)
    litige_id = Column(Integer, ForeignKey("litiges.id"), nullable=False)
    type_communication = Column(String, nullable=False)
    contenu = Column(Text, nullable=False)
    modele_email = Column(String)
    destinataires = Column(JSON)
    cree_par = Column(String)
    cree_le = Column(DateTime, default=_now)

    litige = relationship("Litige", back_populates="communications")


class ReleveBancaire(Base):
    __tablename__ = "releves_bancaires"

    id = Column(Integer, primary_key=True)
    nom_fichier = Column(String, nullable=False)
    format_fichier = Column(String)  # csv | ofx
    compte = Column(String)
    date_debut = Column(Date)
    date_fin = Column(Date)
    total_debits = Column(Float, default=0)
    total_credits = Column(Float, default=0)
    nb_transactions = Column(Integer, default=0)
    statut = Column(String, default="processed")
    importe_par = Column(String)
    cree_le = Column(DateTime, default=_now)

    transactions = relationship(
        "TransactionBancaire", back_populates="releve", cascade="all, delete-orphan"
    )


class TransactionBancaire(Base):
    __tablename__ = "transactions_bancaires"

    id = Column(Integer, primary_key=True)
    releve_id = Column(Integer, ForeignKey("releves_bancaires.id"), nullable=False)
    date_operation = Column(Date, nullable=False)
    date_valeur = Column(Date)
    montant = Column(Float, nullable=False)  # valeur absolue
    sens = Column(String, nullable=False)  # debit | credit
    description = Column(Text)
    reference_bancaire = Column(String)
    nom_contrepartie = Column(String)
    iban_contrepartie = Column(String)
    statut = Column(String, default="pending")
    facture_id = Column(Integer, ForeignKey("factures.id"))
    confiance = Column(Integer)
    methode = Column(String)  # manual | auto
    rapproche_par = Column(String)
    rapproche_le = Column(DateTime)

    releve = relationship("ReleveBancaire", back_populates="transactions")
    facture = relationship("Facture")

    __table_args__ = (
        Index("idx_transactions_statut", "statut", "sens"),
    )


class Delegation(Base):
    __tablename__ = "delegations"

    id = Column(Integer, primary_key=True)
    delegant_id = Column(String, nullable=False)
    delegataire_id = Column(String, nullable=False)
    date_debut = Column(Date, nullable=False)
    date_fin = Column(Date, nullable=False)
    motif = Column(Text)
    active = Column(Boolean, default=True)
    cree_le = Column(DateTime, default=_now)


class RoleUtilisateur(Base):
    __tablename__ = "roles_utilisateurs"

    id = Column(Integer, primary_key=True)
    utilisateur_id = Column(String, nullable=False)
    role = Column(String, nullable=False)

    __table_args__ = (
        Index("idx_roles_utilisateur", "utilisateur_id", "role", unique=True),
    )


class JournalAudit(Base):
    __tablename__ = "journal_audit"

    id = Column(Integer, primary_key=True)
    type_entite = Column(String, nullable=False)
    entite_id = Column(Integer, nullable=False)
    action = Column(String, nullable=False)
    changements = Column(JSON)
    effectue_par = Column(String)
    horodatage = Column(DateTime, default=_now)

    __table_args__ = (
        Index("idx_audit_entite", "type_entite", "entite_id"),
    )


class JournalImport(Base):
    __tablename__ = "journal_imports"

    id = Column(Integer, primary_key=True)
    nom_fichier = Column(String, nullable=False)
    hash_fichier = Column(String)
    taille_fichier = Column(Integer)
    statut = Column(String, default="pending")
    message_erreur = Column(Text)
    facture_id = Column(Integer, ForeignKey("factures.id"))
    doublon_de = Column(Integer, ForeignKey("factures.id"))
    importe_par = Column(String)
    cree_le = Column(DateTime, default=_now)
