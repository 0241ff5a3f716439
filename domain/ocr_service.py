"""OCR extraction service — stored file to extracted invoice fields."""

from __future__ import annotations

import base64
import logging
import mimetypes
from collections.abc import Callable

from domain.models import EntreeAudit, ResultatOcr, ResultatRapprochement, StatutFacture
from domain.normalization import normalize_iban
from domain.ocr_parsing import (
    MESSAGE_UTILISATEUR,
    PROMPT_EXTRACTION,
    analyser_reponse,
    en_date,
    en_montant,
    en_texte,
)
from domain.ports import AuditRepository, FactureRepository, PasserelleIAPort, StockagePort

logger = logging.getLogger(__name__)

TYPE_MIME_PAR_DEFAUT = "application/pdf"


def url_donnees(contenu: bytes, chemin: str) -> str:
    """``data:`` URL of the file, MIME type guessed from its name."""
    type_mime = mimetypes.guess_type(chemin)[0] or TYPE_MIME_PAR_DEFAUT
    encode = base64.b64encode(contenu).decode("ascii")
    return f"data:{type_mime};base64,{encode}"


def messages_extraction(url: str) -> list[dict]:
    return [
        {"role": "system", "content": PROMPT_EXTRACTION},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": MESSAGE_UTILISATEUR},
                {"type": "image_url", "image_url": {"url": url}},
            ],
        },
    ]


def changements_facture(resultat: ResultatOcr) -> dict:
    """Invoice columns written back from the extracted fields."""
    champs = resultat.champs
    return {
        "champs_ocr": {cle: champ.to_dict() for cle, champ in champs.items()},
        "score_confiance_ocr": resultat.confiance_moyenne,
        "texte_ocr_brut": resultat.texte_brut,
        "nom_fournisseur_extrait": en_texte(champs["supplier_name"].valeur),
        "numero_facture": en_texte(champs["invoice_number"].valeur),
        "date_emission": en_date(champs["issue_date"].valeur),
        "date_echeance": en_date(champs["due_date"].valeur),
        "montant_ht": en_montant(champs["amount_ht"].valeur),
        "montant_tva": en_montant(champs["amount_tva"].valeur),
        "montant_ttc": en_montant(champs["amount_ttc"].valeur),
        "devise": en_texte(champs["currency"].valeur) or "EUR",
        "numero_bc_extrait": en_texte(champs["po_number"].valeur),
        "numero_bl_extrait": en_texte(champs["bl_number"].valeur),
        "iban_extrait": normalize_iban(en_texte(champs["iban"].valeur)),
        "statut": StatutFacture.A_VALIDER_EXTRACTION,
    }


class OcrService:
    """Sends the stored invoice to the vision model and writes the fields back."""

    def __init__(
        self,
        factures: FactureRepository,
        stockage: StockagePort,
        passerelle: PasserelleIAPort,
        audit: AuditRepository,
        declencher_rapprochement: Callable[[int], ResultatRapprochement] | None = None,
        modele: str = "google/gemini-2.5-pro",
        max_tokens: int = 2000,
        champ_valide: Callable[[object], bool] | None = None,
    ) -> None:
        self._factures = factures
        self._stockage = stockage
        self._passerelle = passerelle
        self._audit = audit
        self._declencher_rapprochement = declencher_rapprochement
        self._modele = modele
        self._max_tokens = max_tokens
        self._champ_valide = champ_valide

    def traiter(self, facture_id: int, chemin: str) -> tuple[ResultatOcr, ResultatRapprochement | None]:
        """Extract the fields of one invoice, then match it when a PO or BL number was found.

        A matching failure is logged and leaves the OCR result in place.
        """
        self._factures.mettre_a_jour(facture_id, {"statut": StatutFacture.A_VALIDER_EXTRACTION})
        contenu = self._stockage.lire(chemin)

        reponse = self._passerelle.completer(
            messages_extraction(url_donnees(contenu, chemin)),
            modele=self._modele,
            max_tokens=self._max_tokens,
        )
        resultat = analyser_reponse(reponse, self._champ_valide)

        self._factures.mettre_a_jour(facture_id, changements_facture(resultat))
        self._audit.enregistrer(EntreeAudit(
            type_entite="invoice",
            entite_id=facture_id,
            action="ocr_processed",
            changements={
                "confidence_score": resultat.confiance_moyenne,
                "fields_extracted": resultat.champs_extraits(),
            },
        ))
        logger.info(
            "OCR facture %s terminé, confiance %.2f", facture_id, resultat.confiance_moyenne
        )

        rapprochement = None
        champs = resultat.champs
        if self._declencher_rapprochement is not None and (
            champs["po_number"].valeur or champs["bl_number"].valeur
        ):
            try:
                rapprochement = self._declencher_rapprochement(facture_id)
            except Exception:
                logger.exception("Rapprochement automatique échoué pour la facture %s", facture_id)
        return resultat, rapprochement
