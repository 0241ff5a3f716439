"""OCR answer parsing — pure functions, zero external dependencies.

Turns the chat-completion answer into the twelve ``ChampOcr`` fields.
Only stdlib and domain.models imports allowed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import date

from domain.models import ChampOcr, ResultatOcr

logger = logging.getLogger(__name__)

CHAMPS_OCR = (
    "supplier_name",
    "supplier_id",
    "invoice_number",
    "issue_date",
    "due_date",
    "amount_ht",
    "amount_tva",
    "amount_ttc",
    "currency",
    "po_number",
    "bl_number",
    "iban",
)

PROMPT_EXTRACTION = """Tu es un expert en extraction de données de factures. Extrais les informations suivantes de la facture avec un score de confiance entre 0 et 1 pour chaque champ.

Retourne UNIQUEMENT un JSON valide avec cette structure exacte:
{
  "supplier_name": {"value": "string ou null", "confidence": 0.0-1.0},
  "supplier_id": {"value": "string (SIRET/SIREN) ou null", "confidence": 0.0-1.0},
  "invoice_number": {"value": "string ou null", "confidence": 0.0-1.0},
  "issue_date": {"value": "YYYY-MM-DD ou null", "confidence": 0.0-1.0},
  "due_date": {"value": "YYYY-MM-DD ou null", "confidence": 0.0-1.0},
  "amount_ht": {"value": number ou null, "confidence": 0.0-1.0},
  "amount_tva": {"value": number ou null, "confidence": 0.0-1.0},
  "amount_ttc": {"value": number ou null, "confidence": 0.0-1.0},
  "currency": {"value": "EUR/USD/etc ou null", "confidence": 0.0-1.0},
  "po_number": {"value": "string (numéro BC) ou null", "confidence": 0.0-1.0},
  "bl_number": {"value": "string (numéro BL) ou null", "confidence": 0.0-1.0},
  "iban": {"value": "string ou null", "confidence": 0.0-1.0}
}

Si un champ n'est pas trouvé, mets value à null et confidence à 0."""

MESSAGE_UTILISATEUR = "Extrais les informations de cette facture:"

_BLOC_CODE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extraire_json(contenu: str) -> str:
    """Return the body of the first markdown code fence, or the content itself."""
    match = _BLOC_CODE.search(contenu)
    if match:
        return match.group(1).strip()
    return contenu


def champs_vides() -> dict[str, ChampOcr]:
    return {cle: ChampOcr() for cle in CHAMPS_OCR}


def analyser_reponse(
    contenu: str,
    champ_valide: Callable[[object], bool] | None = None,
) -> ResultatOcr:
    """Parse the model answer; any parse failure degrades to empty fields.

    Args:
        contenu: Raw assistant message.
        champ_valide: Optional shape check applied to each field; a field
            failing it is reset to null / zero confidence.
    """
    try:
        donnees = json.loads(extraire_json(contenu))
        if not isinstance(donnees, dict):
            raise ValueError("la réponse n'est pas un objet JSON")
    except ValueError as exc:
        logger.error("Réponse OCR illisible: %s", exc)
        return ResultatOcr(champs=champs_vides(), confiance_moyenne=0.0, texte_brut=contenu)

    champs = {}
    for cle in CHAMPS_OCR:
        brut = donnees.get(cle)
        if not isinstance(brut, dict) or (champ_valide is not None and not champ_valide(brut)):
            champs[cle] = ChampOcr()
            continue
        champs[cle] = ChampOcr(
            valeur=brut.get("value"),
            confiance=en_montant(brut.get("confidence")) or 0.0,
        )
    return ResultatOcr(
        champs=champs,
        confiance_moyenne=confiance_moyenne(champs),
        texte_brut=contenu,
    )


def confiance_moyenne(champs: dict[str, ChampOcr]) -> float:
    if not champs:
        return 0.0
    return sum(c.confiance for c in champs.values()) / len(champs)


# ── Value coercion ──────────────────────────────────────────────────────


def en_date(valeur) -> date | None:
    """ISO ``YYYY-MM-DD`` string to date; anything else gives None."""
    if not valeur:
        return None
    try:
        return date.fromisoformat(str(valeur)[:10])
    except ValueError:
        return None


def en_montant(valeur) -> float | None:
    """Number or numeric string (``1 234,50`` accepted) to float."""
    if valeur is None or valeur == "":
        return None
    if isinstance(valeur, (int, float)):
        return float(valeur)
    texte = str(valeur).replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        return float(texte)
    except ValueError:
        return None


def en_texte(valeur) -> str | None:
    if valeur is None:
        return None
    texte = str(valeur).strip()
    return texte or None
