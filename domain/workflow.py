"""Manual invoice workflow — allowed status transitions and exception handling.

Only stdlib and domain.models imports allowed.
"""

from __future__ import annotations

from dataclasses import dataclass

from domain.exceptions import ErreurValidation, TransitionInvalide
from domain.models import StatutFacture, StatutRapprochement

S = StatutFacture


@dataclass(frozen=True)
class Transition:
    """A user action moving an invoice from one of *depuis* to *vers*."""

    depuis: tuple[StatutFacture, ...]
    vers: StatutFacture
    libelle: str
    motif_requis: bool = False


TRANSITIONS = (
    Transition((S.A_VALIDER_EXTRACTION,), S.A_RAPPROCHER, "Valider extraction"),
    Transition((S.A_RAPPROCHER,), S.A_APPROUVER, "Envoyer pour approbation"),
    Transition((S.A_APPROUVER,), S.PRETE_COMPTABILISATION, "Approuver"),
    Transition((S.A_APPROUVER,), S.EXCEPTION, "Rejeter", motif_requis=True),
    Transition((S.PRETE_COMPTABILISATION,), S.COMPTABILISEE, "Marquer comptabilisée"),
    Transition(
        (S.A_VALIDER_EXTRACTION, S.A_RAPPROCHER), S.EXCEPTION, "Signaler exception",
        motif_requis=True,
    ),
    Transition((S.A_APPROUVER,), S.LITIGE, "Mettre en litige", motif_requis=True),
    Transition((S.EXCEPTION, S.LITIGE), S.A_VALIDER_EXTRACTION, "Reprendre le traitement"),
)


def transitions_disponibles(statut: StatutFacture) -> list[Transition]:
    return [t for t in TRANSITIONS if statut in t.depuis]


def verifier_transition(
    statut: StatutFacture, vers: StatutFacture, motif: str | None = None
) -> Transition:
    """Return the matching transition or raise TransitionInvalide / ErreurValidation."""
    for transition in transitions_disponibles(statut):
        if transition.vers is vers:
            if transition.motif_requis and not (motif and motif.strip()):
                raise ErreurValidation(f"Un motif est requis pour « {transition.libelle} »")
            return transition
    raise TransitionInvalide(f"Transition {statut.value} -> {vers.value} non autorisée")


def changements_transition(vers: StatutFacture, motif: str | None = None) -> dict:
    changements: dict = {"statut": vers}
    if motif and motif.strip():
        changements["motif_rejet"] = motif.strip()
    return changements


# ── Exception resolution ────────────────────────────────────────────────

ACTIONS_EXCEPTION = ("validate", "reject", "reprocess")

_SANS_ANOMALIE = {
    "a_anomalies": False,
    "types_anomalies": None,
    "details_anomalies": None,
}


def changements_resolution(action: str) -> dict:
    """Invoice changes applied by an exception resolution action."""
    if action == "validate":
        return {"statut": S.A_APPROUVER, **_SANS_ANOMALIE}
    if action == "reject":
        return {"statut": S.LITIGE}
    if action == "reprocess":
        return {
            "statut": S.NOUVELLE,
            **_SANS_ANOMALIE,
            "statut_rapprochement": StatutRapprochement.AUCUN_MATCH,
            "score_rapprochement": None,
            "details_rapprochement": None,
        }
    raise ValueError(f"Action inconnue: {action}")
