"""Approval workflow service — orchestrates the approval ports.

Pure Python: the repositories are injected. The caller owns the unit of
work and commits once the whole operation has succeeded.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from domain.approval_rules import (
    construire_etapes,
    etat_apres_approbation,
    selectionner_regle,
    verifier_niveau_en_attente,
)
from domain.exceptions import NonAuthentifie
from domain.models import (
    EntreeAudit,
    EtapeApprobation,
    InitialisationApprobation,
    ResultatApprobation,
    StatutEtape,
    StatutFacture,
)
from domain.ports import (
    AuditRepository,
    FactureRepository,
    HistoriqueApprobationRepository,
    RegleApprobationRepository,
)

logger = logging.getLogger(__name__)


class ApprovalService:
    """Rule matching, history tracking and status transitions of the approval chain."""

    def __init__(
        self,
        factures: FactureRepository,
        regles: RegleApprobationRepository,
        historique: HistoriqueApprobationRepository,
        audit: AuditRepository,
    ) -> None:
        self._factures = factures
        self._regles = regles
        self._historique = historique
        self._audit = audit

    def initialiser(
        self,
        facture_id: int,
        montant: float,
        fournisseur_critique: bool = False,
        utilisateur_id: str | None = None,
    ) -> InitialisationApprobation:
        """Select the rule, insert one pending row per level and move the invoice to a_approuver."""
        regle = selectionner_regle(self._regles.lister_actives(), montant, fournisseur_critique)
        etapes = self._historique.ajouter(construire_etapes(regle, facture_id))
        self._factures.mettre_a_jour(facture_id, {
            "regle_approbation_id": regle.id,
            "niveau_approbation_courant": 1,
            "niveaux_approbation_requis": regle.niveaux_requis,
            "statut": StatutFacture.A_APPROUVER,
        })
        self._audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture_id,
            action="approval_initialized",
            changements={"rule": regle.nom, "required_levels": regle.niveaux_requis},
            effectue_par=utilisateur_id,
        ))
        logger.info(
            "Facture %s: règle '%s' (%s niveaux)", facture_id, regle.nom, regle.niveaux_requis
        )
        return InitialisationApprobation(
            regle=regle, niveaux_requis=regle.niveaux_requis, etapes=etapes
        )

    def approuver(
        self,
        facture_id: int,
        niveau: int,
        utilisateur_id: str | None,
        commentaire: str | None = None,
    ) -> ResultatApprobation:
        """Approve *niveau*; the last required level makes the invoice ready for accounting."""
        if not utilisateur_id:
            raise NonAuthentifie()
        verifier_niveau_en_attente(self._historique.lister(facture_id), niveau)
        self._historique.marquer(
            facture_id, niveau, StatutEtape.APPROVED, utilisateur_id, commentaire
        )
        facture = self._factures.get(facture_id)
        resultat = etat_apres_approbation(niveau, facture.niveaux_approbation_requis)

        changements = {
            "niveau_approbation_courant": resultat.niveau_courant,
            "statut": resultat.statut,
        }
        if resultat.est_dernier:
            changements["approuve_par"] = utilisateur_id
            changements["approuve_le"] = datetime.now(timezone.utc)
        self._factures.mettre_a_jour(facture_id, changements)
        self._audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture_id,
            action="approved",
            changements={"level": niveau, "completed": resultat.est_dernier},
            effectue_par=utilisateur_id,
        ))
        return resultat

    def rejeter(
        self, facture_id: int, niveau: int, utilisateur_id: str | None, motif: str
    ) -> None:
        """Reject *niveau*: the invoice goes to exception with the free-text reason."""
        if not utilisateur_id:
            raise NonAuthentifie()
        verifier_niveau_en_attente(self._historique.lister(facture_id), niveau)
        self._historique.marquer(
            facture_id, niveau, StatutEtape.REJECTED, utilisateur_id, motif
        )
        self._factures.mettre_a_jour(facture_id, {
            "statut": StatutFacture.EXCEPTION,
            "motif_rejet": motif,
        })
        self._audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture_id,
            action="rejected",
            changements={"level": niveau, "reason": motif},
            effectue_par=utilisateur_id,
        ))

    def historique(self, facture_id: int) -> list[EtapeApprobation]:
        return self._historique.lister(facture_id)
