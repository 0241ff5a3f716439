"""Domain errors — pure Python, zero external dependencies."""

from __future__ import annotations


class ErreurMetier(Exception):
    """Base class for business errors surfaced to the user."""


class FactureIntrouvable(ErreurMetier):
    def __init__(self, facture_id):
        super().__init__(f"Facture introuvable: {facture_id}")
        self.facture_id = facture_id


class AucuneRegleApprobation(ErreurMetier):
    def __init__(self, montant: float, fournisseur_critique: bool):
        super().__init__("Aucune règle d'approbation trouvée")
        self.montant = montant
        self.fournisseur_critique = fournisseur_critique


class NonAuthentifie(ErreurMetier):
    def __init__(self):
        super().__init__("Non authentifié")


class TransitionInvalide(ErreurMetier):
    """Raised when a manual status change is not allowed from the current status."""


class ErreurValidation(ErreurMetier):
    """Raised on invalid user input (import rows, rule settings, delegations)."""


# ── AI gateway ──────────────────────────────────────────────────────────


class ErreurPasserelleIA(ErreurMetier):
    """Non-2xx answer from the chat-completion gateway."""

    status_code = 500

    def __init__(self, message: str = "Erreur du service IA", details: str | None = None):
        super().__init__(message)
        self.details = details


class LimiteRequetesAtteinte(ErreurPasserelleIA):
    status_code = 429

    def __init__(self, message: str = "Limite de requêtes atteinte, réessayez plus tard."):
        super().__init__(message)


class CreditsInsuffisants(ErreurPasserelleIA):
    status_code = 402

    def __init__(self, message: str = "Crédits IA insuffisants."):
        super().__init__(message)


class PasserelleNonConfiguree(ErreurPasserelleIA):
    def __init__(self):
        super().__init__("AI_GATEWAY_API_KEY is not configured")
