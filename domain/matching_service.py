"""Invoice matching service — supplier, purchase order and delivery note lookups.

Each lookup is an independent point query on its repository; the four
partial scores are combined by ``domain.matching``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from domain.matching import (
    ANOMALIE_BC_BL,
    ANOMALIE_FOURNISSEUR_BC,
    ANOMALIE_SANS_REFERENCE,
    SCORE_APPROCHANT,
    SCORE_EXACT,
    SCORE_FOURNISSEUR_CREE,
    SCORE_VIA_BL,
    anomalie_montant,
    classer_score,
    ecart_montant_pct,
    score_fournisseur,
    score_global,
    score_montant,
    statut_facture_pour,
)
from domain.models import EntreeAudit, Facture, Fournisseur, ResultatRapprochement
from domain.normalization import normalize_iban
from domain.ports import (
    AuditRepository,
    BonCommandeRepository,
    BonLivraisonRepository,
    FactureRepository,
    FournisseurRepository,
)

logger = logging.getLogger(__name__)

PAYS_PAR_DEFAUT = "CI"


def _valeur_ocr(champs_ocr: dict, cle: str):
    champ = champs_ocr.get(cle)
    if isinstance(champ, dict):
        return champ.get("value")
    return None


class _Etat:
    """Mutable accumulator for one matching run."""

    def __init__(self) -> None:
        self.fournisseur_id: int | None = None
        self.bon_commande_id: int | None = None
        self.bon_livraison_id: int | None = None
        self.anomalies: list[str] = []
        self.details: dict = {
            "po_match": {"found": False, "score": 0, "method": "none"},
            "bl_match": {"found": False, "score": 0, "method": "none"},
            "supplier_match": {"found": False, "score": 0, "method": "none"},
            "amount_match": {"found": False, "score": 0},
        }

    def score(self, cle: str) -> float:
        return self.details[f"{cle}_match"]["score"]


class MatchingService:
    """Reconciles an invoice with its supplier, purchase order and delivery note."""

    def __init__(
        self,
        factures: FactureRepository,
        fournisseurs: FournisseurRepository,
        bons_commande: BonCommandeRepository,
        bons_livraison: BonLivraisonRepository,
        audit: AuditRepository,
    ) -> None:
        self._factures = factures
        self._fournisseurs = fournisseurs
        self._bons_commande = bons_commande
        self._bons_livraison = bons_livraison
        self._audit = audit

    def rapprocher(self, facture_id: int) -> ResultatRapprochement:
        facture = self._factures.get(facture_id)
        etat = _Etat()

        if facture.nom_fournisseur_extrait:
            self._chercher_fournisseur(facture, etat)
        if facture.numero_bc_extrait:
            self._chercher_bon_commande(facture, etat)
        if facture.numero_bl_extrait:
            self._chercher_bon_livraison(facture, etat)

        score = score_global({
            cle: etat.score(cle) for cle in ("po", "bl", "supplier", "amount")
        })
        statut = classer_score(score, etat.anomalies)
        # Appended after bucketing: flags the invoice without changing its bucket.
        if not etat.details["po_match"]["found"] and not etat.details["bl_match"]["found"]:
            etat.anomalies.append(ANOMALIE_SANS_REFERENCE)

        details = dict(etat.details, anomalies=list(etat.anomalies))
        a_anomalies = bool(etat.anomalies)
        self._factures.mettre_a_jour(facture_id, {
            "fournisseur_id": etat.fournisseur_id,
            "bon_commande_id": etat.bon_commande_id,
            "bon_livraison_id": etat.bon_livraison_id,
            "score_rapprochement": score,
            "statut_rapprochement": statut,
            "details_rapprochement": details,
            "statut": statut_facture_pour(statut),
            "a_anomalies": a_anomalies,
            "types_anomalies": list(etat.anomalies) if a_anomalies else None,
            "details_anomalies": (
                {
                    "detected_at": datetime.now(timezone.utc).isoformat(),
                    "anomalies": list(etat.anomalies),
                }
                if a_anomalies
                else None
            ),
        })
        self._audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture_id,
            action="matching_completed",
            changements={
                "match_status": statut.value,
                "match_score": score,
                "po_id": etat.bon_commande_id,
                "bl_id": etat.bon_livraison_id,
                "anomalies_count": len(etat.anomalies),
            },
        ))
        logger.info("Rapprochement facture %s: %s (score %.2f)", facture_id, statut.value, score)
        return ResultatRapprochement(
            score=score,
            statut=statut,
            anomalies=list(etat.anomalies),
            details=details,
            fournisseur_id=etat.fournisseur_id,
            bon_commande_id=etat.bon_commande_id,
            bon_livraison_id=etat.bon_livraison_id,
        )

    # ── Lookups ────────────────────────────────────────────────────────

    def _chercher_fournisseur(self, facture: Facture, etat: _Etat) -> None:
        nom = facture.nom_fournisseur_extrait
        candidats = self._fournisseurs.rechercher(nom)
        if candidats:
            fournisseur = candidats[0]
            etat.fournisseur_id = fournisseur.id
            etat.details["supplier_match"] = {
                "found": True,
                "score": score_fournisseur(fournisseur.nom, nom),
                "method": "name_search",
                "supplier_name": fournisseur.nom,
            }
            return

        logger.info("Aucun fournisseur pour '%s', création automatique", nom)
        champs = facture.champs_ocr or {}
        nouveau = Fournisseur(
            nom=nom,
            iban=normalize_iban(facture.iban_extrait or _valeur_ocr(champs, "iban")),
            identifiant_fiscal=_valeur_ocr(champs, "fiscal_identifier"),
            numero_registre=_valeur_ocr(champs, "company_identifier"),
            adresse=_valeur_ocr(champs, "supplier_address"),
            email=_valeur_ocr(champs, "supplier_email"),
            telephone=_valeur_ocr(champs, "supplier_phone"),
            pays=PAYS_PAR_DEFAUT,
            notes=(
                "Créé automatiquement depuis facture OCR le "
                f"{date.today().strftime('%d/%m/%Y')}"
            ),
        )
        try:
            cree = self._fournisseurs.creer(nouveau)
        except Exception as exc:
            logger.error("Création du fournisseur '%s' impossible: %s", nom, exc)
            etat.details["supplier_match"] = {
                "found": False, "score": 0, "method": "auto_create_failed",
            }
            return

        etat.fournisseur_id = cree.id
        etat.details["supplier_match"] = {
            "found": True,
            "score": SCORE_FOURNISSEUR_CREE,
            "method": "auto_created",
            "supplier_name": cree.nom,
        }
        self._audit.enregistrer(EntreeAudit(
            type_entite="supplier",
            entite_id=cree.id,
            action="auto_created_from_ocr",
            changements={
                "source_invoice_id": facture.id,
                "supplier_name": cree.nom,
                "iban": cree.iban,
            },
        ))

    def _chercher_bon_commande(self, facture: Facture, etat: _Etat) -> None:
        numero = facture.numero_bc_extrait
        bc = self._bons_commande.trouver_par_numero(numero)
        if bc is None:
            approchant = self._bons_commande.rechercher_approchant(numero)
            if approchant is not None:
                etat.bon_commande_id = approchant.id
                etat.details["po_match"] = {
                    "found": True,
                    "score": SCORE_APPROCHANT,
                    "method": "fuzzy_match",
                    "po_number": approchant.numero,
                }
            return

        etat.bon_commande_id = bc.id
        etat.details["po_match"] = {
            "found": True, "score": SCORE_EXACT, "method": "exact_match", "po_number": bc.numero,
        }
        if bc.fournisseur_id and etat.fournisseur_id and bc.fournisseur_id != etat.fournisseur_id:
            etat.anomalies.append(ANOMALIE_FOURNISSEUR_BC)
        elif bc.fournisseur_id and not etat.fournisseur_id:
            etat.fournisseur_id = bc.fournisseur_id

        if facture.montant_ttc and bc.montant_ttc:
            ecart = ecart_montant_pct(facture.montant_ttc, bc.montant_ttc)
            etat.details["amount_match"] = {
                "found": True,
                "score": score_montant(ecart),
                "difference_percent": ecart,
            }
            anomalie = anomalie_montant(ecart)
            if anomalie:
                etat.anomalies.append(anomalie)

    def _chercher_bon_livraison(self, facture: Facture, etat: _Etat) -> None:
        numero = facture.numero_bl_extrait
        bl = self._bons_livraison.trouver_par_numero(numero)
        if bl is None:
            approchant = self._bons_livraison.rechercher_approchant(numero)
            if approchant is not None:
                etat.bon_livraison_id = approchant.id
                etat.details["bl_match"] = {
                    "found": True,
                    "score": SCORE_APPROCHANT,
                    "method": "fuzzy_match",
                    "bl_number": approchant.numero,
                }
            return

        etat.bon_livraison_id = bl.id
        etat.details["bl_match"] = {
            "found": True, "score": SCORE_EXACT, "method": "exact_match", "bl_number": bl.numero,
        }
        if bl.bon_commande_id and etat.bon_commande_id and bl.bon_commande_id != etat.bon_commande_id:
            etat.anomalies.append(ANOMALIE_BC_BL)
        elif bl.bon_commande_id and not etat.bon_commande_id:
            etat.bon_commande_id = bl.bon_commande_id
            etat.details["po_match"] = {
                "found": True, "score": SCORE_VIA_BL, "method": "via_delivery_note",
            }
