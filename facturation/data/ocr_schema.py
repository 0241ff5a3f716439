"""JSON schema of one OCR field as returned by the vision model."""

from __future__ import annotations

import logging

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

CHAMP_OCR_SCHEMA = {
    "type": "object",
    "required": ["value", "confidence"],
    "properties": {
        "value": {"type": ["string", "number", "null"]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
}

_VALIDATOR = Draft7Validator(CHAMP_OCR_SCHEMA)


def champ_valide(champ: object) -> bool:
    """True when *champ* is a ``{value, confidence}`` pair with confidence in [0, 1]."""
    erreurs = list(_VALIDATOR.iter_errors(champ))
    for erreur in erreurs:
        logger.warning("Champ OCR rejeté: %s", erreur.message)
    return not erreurs
