"""Prompts for the AI assistant features (anomaly explanation, finance copilot).

Only stdlib and domain imports allowed.
"""

from __future__ import annotations

from collections.abc import Iterator

from domain.ports import PasserelleIAPort

LIBELLES_ANOMALIES = {
    "supplier_mismatch": "Fournisseur non reconnu dans le référentiel",
    "amount_discrepancy": "Écart entre le montant facturé et le bon de commande",
    "unknown_iban": "IBAN du fournisseur non enregistré",
    "potential_duplicate": "Doublon potentiel avec une autre facture",
    "missing_po": "Bon de commande manquant ou non trouvé",
    "date_anomaly": "Incohérence dans les dates (émission, échéance)",
    "low_confidence": "Score de confiance OCR insuffisant",
}

EXPLICATION_PAR_DEFAUT = "Impossible de générer une explication."


def montant_fr(montant: float | None) -> str:
    """French thousands grouping, e.g. ``12 345,5``."""
    texte = f"{montant or 0:,.2f}".replace(",", " ").replace(".", ",")
    return texte.rstrip("0").rstrip(",")


def _montant_devise(montant, devise) -> str:
    if not montant:
        return "Non extrait"
    return f"{montant} {devise or 'EUR'}"


def lignes_anomalies(types_anomalies: list[str] | None, details: dict | None) -> str:
    details = details or {}
    lignes = []
    for code in types_anomalies or []:
        libelle = LIBELLES_ANOMALIES.get(code, code)
        detail = details.get(code)
        message = detail.get("message", "") if isinstance(detail, dict) else ""
        lignes.append(f"- {libelle}: {message}" if message else f"- {libelle}")
    return "\n".join(lignes)


def prompt_explication(facture: dict) -> str:
    """Expert prompt explaining the anomalies of one invoice.

    *facture* holds the invoice columns plus an optional ``nom_fournisseur``.
    """
    score = facture.get("score_confiance_ocr")
    anomalies = lignes_anomalies(facture.get("types_anomalies"), facture.get("details_anomalies"))
    fournisseur = facture.get("nom_fournisseur") or facture.get("nom_fournisseur_extrait") or "Inconnu"
    return f"""Tu es un expert en comptabilité fournisseur et gestion des factures. Analyse cette exception et fournis une explication claire et des recommandations.

FACTURE:
- Numéro: {facture.get("numero_facture") or "Non extrait"}
- Fournisseur: {fournisseur}
- Montant TTC: {_montant_devise(facture.get("montant_ttc"), facture.get("devise"))}
- Montant HT: {_montant_devise(facture.get("montant_ht"), facture.get("devise"))}
- Date d'émission: {facture.get("date_emission") or "Non extraite"}
- Date d'échéance: {facture.get("date_echeance") or "Non extraite"}
- N° BC extrait: {facture.get("numero_bc_extrait") or "Aucun"}
- IBAN extrait: {facture.get("iban_extrait") or "Aucun"}
- Score OCR: {f"{round(score * 100)}%" if score else "N/A"}

ANOMALIES DÉTECTÉES:
{anomalies or "Aucune anomalie spécifique identifiée"}

Fournis:
1. Une explication claire et concise de chaque anomalie (2-3 phrases max par anomalie)
2. L'impact potentiel sur le traitement de la facture
3. Les actions recommandées pour résoudre chaque anomalie

Réponds en français, de manière professionnelle et actionnable."""


def prompt_copilote(stats: dict) -> str:
    """System prompt giving the copilot the live business figures.

    *stats* is the dict built by ``facturation.analytics.copilote.contexte_metier``.
    """
    par_statut = "\n".join(
        f"  - {statut}: {nombre}" for statut, nombre in stats["par_statut"].items()
    )
    retards = stats["retards"]
    if retards["top"]:
        top_retards = "- Top 5 en retard:\n" + "\n".join(
            f"  - {r['numero_facture'] or 'N/A'} ({r['fournisseur'] or 'Inconnu'}): "
            f"{montant_fr(r['montant'])}€, {r['jours_retard']}j de retard"
            for r in retards["top"]
        )
    else:
        top_retards = "- Aucune facture en retard"
    top_fournisseurs = "\n".join(
        f"{i}. {f['nom']}: {montant_fr(f['montant'])}€ ({f['nombre']} factures)"
        for i, f in enumerate(stats["top_fournisseurs"], start=1)
    )
    return f"""
Tu es l'assistant IA de SUTA Finance, un expert en comptabilité fournisseurs et gestion des factures.

## État actuel du système (données temps réel):

### Factures
- Total: {stats["total"]} factures
- Ce mois-ci: {stats["ce_mois"]} nouvelles factures
- Par statut:
{par_statut}

### Montants
- Total à payer: {montant_fr(stats["montant_a_payer"])}€
- Total payé: {montant_fr(stats["montant_paye"])}€

### Retards de paiement
- Factures en retard: {retards["nombre"]}
- Montant total en retard: {montant_fr(retards["montant"])}€
{top_retards}

### Anomalies et exceptions
- Factures avec anomalies: {stats["avec_anomalies"]}
- Factures en exception: {stats["exceptions"]}
- Litiges ouverts: {stats["litiges_ouverts"]}

### Performance
- Délai moyen de traitement: {stats["delai_moyen_jours"]} jours
- Fournisseurs: {stats["nb_fournisseurs"]} actifs

### Top 5 fournisseurs (par montant)
{top_fournisseurs}

## Instructions:
- Réponds en français, de manière concise et professionnelle
- Donne des chiffres précis basés sur les données ci-dessus
- Propose des actions concrètes et recommandations quand pertinent
- Si on te demande des détails que tu n'as pas, dis-le clairement
- Utilise des emojis avec modération pour rendre les réponses plus lisibles
"""


def expliquer_anomalie(passerelle: PasserelleIAPort, facture: dict, modele: str) -> str:
    """Ask the model to explain the anomalies of *facture*."""
    explication = passerelle.completer(
        [{"role": "user", "content": prompt_explication(facture)}], modele
    )
    return explication or EXPLICATION_PAR_DEFAUT


def flux_copilote(
    passerelle: PasserelleIAPort, stats: dict, messages: list[dict], modele: str
) -> Iterator[bytes]:
    """Stream the copilot answer to the conversation *messages*."""
    return passerelle.completer_flux(
        [{"role": "system", "content": prompt_copilote(stats)}, *messages], modele
    )
