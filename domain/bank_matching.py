"""Bank reconciliation suggestions — pure functions, zero external dependencies.

Only stdlib and domain.models imports allowed.
"""

from __future__ import annotations

from domain.models import SuggestionRapprochementBancaire

TOLERANCE_MONTANT = 0.05
NB_SUGGESTIONS = 5


def scorer_facture(transaction, facture, nom_fournisseur: str | None = None) -> tuple[int, list[str]]:
    """Score one unpaid invoice against a bank transaction.

    Args:
        transaction: Object with .montant, .nom_contrepartie,
            .reference_bancaire and .description.
        facture: Object with .montant_ttc, .numero_facture and
            .nom_fournisseur_extrait.
        nom_fournisseur: Name of the linked supplier, preferred over the
            extracted name.
    """
    score = 0
    raisons: list[str] = []

    ecart = abs((facture.montant_ttc or 0) - transaction.montant)
    if ecart == 0:
        score += 50
        raisons.append("Montant exact")
    elif ecart <= transaction.montant * TOLERANCE_MONTANT:
        score += 30
        raisons.append("Montant proche")

    contrepartie = (transaction.nom_contrepartie or "").lower()
    fournisseur = (nom_fournisseur or facture.nom_fournisseur_extrait or "").lower()
    if contrepartie and fournisseur and (contrepartie in fournisseur or fournisseur in contrepartie):
        score += 30
        raisons.append("Fournisseur correspondant")

    numero = (facture.numero_facture or "").lower()
    reference = (transaction.reference_bancaire or "").lower()
    description = (transaction.description or "").lower()
    if numero and (numero in reference or numero in description):
        score += 20
        raisons.append("Référence facture trouvée")

    return score, raisons


def suggerer(
    transaction, factures: list, noms_fournisseurs: dict[int, str] | None = None
) -> list[SuggestionRapprochementBancaire]:
    """Best candidate invoices for *transaction*, highest score first."""
    noms_fournisseurs = noms_fournisseurs or {}
    suggestions = []
    for facture in factures:
        score, raisons = scorer_facture(
            transaction, facture, noms_fournisseurs.get(facture.fournisseur_id)
        )
        if score > 0:
            suggestions.append(
                SuggestionRapprochementBancaire(facture_id=facture.id, score=score, raisons=raisons)
            )
    suggestions.sort(key=lambda s: s.score, reverse=True)
    return suggestions[:NB_SUGGESTIONS]
