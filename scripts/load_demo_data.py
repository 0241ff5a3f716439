#!/usr/bin/env python3
"""Load a demo referential: roles, approval rules, suppliers, purchase orders.

Usage:
    PYTHONPATH=. python scripts/load_demo_data.py [DATABASE_URL]

Also creates a handful of invoices spread over the workflow so the
dashboard, approval queue and export screens have something to show.
"""
import logging
import sys
from datetime import date, timedelta

from domain.models import Role
from facturation.adapters.outbound.sqlalchemy_models import (
    BonCommande,
    BonLivraison,
    Facture,
    Fournisseur,
)
from facturation.data import approbations
from facturation.data.db import get_engine, init_db, session_scope
from facturation.services import approval_service

logger = logging.getLogger(__name__)

UTILISATEURS = {
    "compta1": [Role.COMPTABLE],
    "daf1": [Role.DAF],
    "dg1": [Role.DG],
    "admin": [Role.ADMIN],
}

REGLES = [
    dict(nom="Standard", montant_min=0, montant_max=10000, niveaux_requis=1,
         role_niveau_1="comptable", priorite=10),
    dict(nom="Montant élevé", montant_min=10000, montant_max=50000, niveaux_requis=2,
         role_niveau_1="comptable", role_niveau_2="daf", priorite=10),
    dict(nom="Très gros montant", montant_min=50000, niveaux_requis=3,
         role_niveau_1="comptable", role_niveau_2="daf", role_niveau_3="dg", priorite=10),
    dict(nom="Fournisseur critique", montant_min=0, fournisseur_critique=True, niveaux_requis=2,
         role_niveau_1="comptable", role_niveau_2="daf", priorite=20),
]


def main(url: str | None = None):
    logging.basicConfig(level=logging.INFO)
    engine = init_db(get_engine(url))
    today = date.today()

    with session_scope(engine) as session:
        for utilisateur, roles in UTILISATEURS.items():
            approbations.set_user_roles(session, utilisateur, roles)
        for regle in REGLES:
            approbations.create_rule(session, **regle)

        acme = Fournisseur(
            nom="ACME Industries", identifiant="ACM001", email="compta@acme.example",
            iban="FR7630006000011234567890189", delai_paiement_jours=30,
        )
        chimex = Fournisseur(nom="Chimex SA", identifiant="CHX042", est_critique=True)
        durand = Fournisseur(nom="Transport Durand SARL", identifiant="TDU007", pays="FR")
        session.add_all([acme, chimex, durand])
        session.flush()

        bc_acme = BonCommande(
            numero="BC-2024-001", fournisseur_id=acme.id, montant_ht=1000.0,
            montant_tva=200.0, montant_ttc=1200.0, date_commande=today - timedelta(days=40),
        )
        bc_chimex = BonCommande(
            numero="BC-2024-002", fournisseur_id=chimex.id, montant_ht=12500.0,
            montant_tva=2500.0, montant_ttc=15000.0, date_commande=today - timedelta(days=30),
        )
        session.add_all([bc_acme, bc_chimex])
        session.flush()
        session.add_all([
            BonLivraison(numero="BL-2024-001", bon_commande_id=bc_acme.id,
                         fournisseur_id=acme.id, date_livraison=today - timedelta(days=35)),
            BonLivraison(numero="BL-2024-002", bon_commande_id=bc_chimex.id,
                         fournisseur_id=chimex.id, date_livraison=today - timedelta(days=20)),
        ])

        factures = [
            Facture(nom_fichier="acme_001.pdf", numero_facture="FA-1001", statut="a_rapprocher",
                    fournisseur_id=acme.id, nom_fournisseur_extrait="ACME Industries",
                    montant_ht=1000.0, montant_tva=200.0, montant_ttc=1200.0,
                    date_emission=today - timedelta(days=10), date_echeance=today + timedelta(days=20),
                    numero_bc_extrait="BC-2024-001", score_confiance_ocr=0.92),
            Facture(nom_fichier="chimex_17.pdf", numero_facture="CX-17", statut="a_rapprocher",
                    fournisseur_id=chimex.id, nom_fournisseur_extrait="Chimex SA",
                    montant_ttc=16200.0, date_emission=today - timedelta(days=45),
                    date_echeance=today - timedelta(days=15), numero_bc_extrait="BC-2024-002",
                    a_anomalies=True, types_anomalies=["amount_difference_8%"],
                    score_confiance_ocr=0.81),
            Facture(nom_fichier="durand_scan.pdf", statut="a_valider_extraction",
                    nom_fournisseur_extrait="Transport Durand", montant_ttc=640.0,
                    score_confiance_ocr=0.48),
            Facture(nom_fichier="acme_000.pdf", numero_facture="FA-0998",
                    statut="prete_comptabilisation", fournisseur_id=acme.id,
                    montant_ht=500.0, montant_tva=100.0, montant_ttc=600.0,
                    date_emission=today - timedelta(days=25), score_confiance_ocr=0.95),
        ]
        session.add_all(factures)
        session.flush()

        service = approval_service(session)
        service.initialiser(factures[0].id, factures[0].montant_ttc)
        service.initialiser(factures[1].id, factures[1].montant_ttc, fournisseur_critique=True)

    logger.info("Données de démo chargées: %d fournisseurs, %d factures", 3, len(factures))


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
