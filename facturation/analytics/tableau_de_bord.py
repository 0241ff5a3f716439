"""Dashboard figures over the invoice table, computed with pandas."""

from __future__ import annotations

import math
from datetime import date, timedelta

import pandas as pd
from sqlalchemy.orm import Session

from domain.models import StatutFacture
from domain.ports import CachePort
from facturation.adapters.outbound.redis_cache import get_or_compute
from facturation.adapters.outbound.sqlalchemy_models import Facture, Fournisseur

STATUTS_EN_COURS = (
    StatutFacture.NOUVELLE.value,
    StatutFacture.A_VALIDER_EXTRACTION.value,
    StatutFacture.A_RAPPROCHER.value,
    StatutFacture.A_APPROUVER.value,
)
STATUTS_VALIDES = (StatutFacture.PRETE_COMPTABILISATION.value, StatutFacture.COMPTABILISEE.value)
STATUTS_EXCEPTION = (StatutFacture.EXCEPTION.value, StatutFacture.LITIGE.value)

SEUIL_MONTANT_ELEVE = 10000
CACHE_KEY = "dashboard:stats"

COLONNES = [
    "id", "numero_facture", "statut", "montant_ttc", "montant_ht", "date_echeance",
    "date_emission", "cree_le", "date_reception", "approuve_le", "a_anomalies",
    "score_confiance_ocr", "fournisseur_id", "nom_fournisseur_extrait", "fournisseur",
]


def factures_dataframe(session: Session) -> pd.DataFrame:
    """One row per invoice, with the linked supplier name in ``fournisseur``."""
    rows = (
        session.query(
            Facture.id,
            Facture.numero_facture,
            Facture.statut,
            Facture.montant_ttc,
            Facture.montant_ht,
            Facture.date_echeance,
            Facture.date_emission,
            Facture.cree_le,
            Facture.date_reception,
            Facture.approuve_le,
            Facture.a_anomalies,
            Facture.score_confiance_ocr,
            Facture.fournisseur_id,
            Facture.nom_fournisseur_extrait,
            Fournisseur.nom.label("fournisseur"),
        )
        .outerjoin(Fournisseur, Facture.fournisseur_id == Fournisseur.id)
        .order_by(Facture.cree_le.desc())
        .all()
    )
    df = pd.DataFrame(rows, columns=COLONNES)
    df["montant_ttc"] = pd.to_numeric(df["montant_ttc"]).fillna(0.0)
    df["a_anomalies"] = df["a_anomalies"].fillna(False).astype(bool)
    df["cree_le"] = pd.to_datetime(df["cree_le"], utc=True)
    return df


def durees_traitement(df: pd.DataFrame) -> pd.Series:
    """Days between reception and final approval, as fractional days."""
    traitees = df.dropna(subset=["approuve_le", "date_reception"])
    if traitees.empty:
        return pd.Series(dtype=float)
    approuve = pd.to_datetime(traitees["approuve_le"], utc=True)
    recu = pd.to_datetime(traitees["date_reception"]).dt.tz_localize("UTC")
    return (approuve - recu).dt.total_seconds() / 86400


def factures_en_retard(df: pd.DataFrame, aujourd_hui: date, statuts_exclus) -> pd.DataFrame:
    echeances = pd.to_datetime(df["date_echeance"])
    retard = df[echeances.notna() & (echeances < pd.Timestamp(aujourd_hui)) & ~df["statut"].isin(statuts_exclus)]
    retard = retard.assign(
        jours_retard=(pd.Timestamp(aujourd_hui) - pd.to_datetime(retard["date_echeance"])).dt.days
    )
    return retard.sort_values("jours_retard", ascending=False)


def _alertes(nb_retard: int, nb_exceptions: int, nb_anomalies: int, nb_montant_eleve: int) -> list[dict]:
    alertes = []
    if nb_retard:
        alertes.append({
            "type": "overdue", "severity": "critical", "count": nb_retard,
            "message": f"{nb_retard} facture(s) en retard de paiement",
        })
    if nb_exceptions:
        alertes.append({
            "type": "exception", "severity": "warning", "count": nb_exceptions,
            "message": f"{nb_exceptions} facture(s) en exception à traiter",
        })
    if nb_anomalies:
        alertes.append({
            "type": "anomaly", "severity": "warning", "count": nb_anomalies,
            "message": f"{nb_anomalies} facture(s) avec anomalies détectées",
        })
    if nb_montant_eleve:
        alertes.append({
            "type": "high_value", "severity": "info", "count": nb_montant_eleve,
            "message": f"{nb_montant_eleve} facture(s) >10k€ en attente d'approbation",
        })
    return alertes


def statistiques(session: Session, aujourd_hui: date | None = None) -> dict:
    """Dashboard statistics as a JSON-serialisable dict."""
    aujourd_hui = aujourd_hui or date.today()
    df = factures_dataframe(session)
    debut_mois = pd.Timestamp(aujourd_hui.replace(day=1)).tz_localize("UTC")

    en_cours = df[df["statut"].isin(STATUTS_EN_COURS)]
    nb_exceptions = int(df["statut"].isin(STATUTS_EXCEPTION).sum())

    durees = durees_traitement(df)
    delai_moyen = round(float(durees.apply(math.ceil).mean()), 1) if not durees.empty else 0

    retard = factures_en_retard(df, aujourd_hui, STATUTS_VALIDES)
    top_retard = retard.head(5)
    retards = [
        {
            "id": int(r.id),
            "numero_facture": r.numero_facture,
            "fournisseur": r.fournisseur or r.nom_fournisseur_extrait,
            "montant_ttc": float(r.montant_ttc),
            "date_echeance": pd.Timestamp(r.date_echeance).date().isoformat(),
            "jours_retard": int(r.jours_retard),
        }
        for r in top_retard.itertuples()
    ]

    par_statut = (
        df.groupby("statut")["montant_ttc"].agg(["count", "sum"]).reset_index()
        .rename(columns={"count": "nombre", "sum": "montant"})
    )

    jours = [aujourd_hui - timedelta(days=i) for i in range(29, -1, -1)]
    recents = df[df["cree_le"] >= pd.Timestamp(aujourd_hui - timedelta(days=30)).tz_localize("UTC")]
    par_jour_df = recents.groupby(recents["cree_le"].dt.date)["montant_ttc"].agg(["count", "sum"])
    par_jour = [
        {
            "date": jour.isoformat(),
            "count": int(par_jour_df["count"].get(jour, 0)),
            "amount": float(par_jour_df["sum"].get(jour, 0.0)),
        }
        for jour in jours
    ]

    noms = df["fournisseur"].fillna(df["nom_fournisseur_extrait"]).fillna("Inconnu")
    top = (
        df.assign(nom=noms).groupby("nom")["montant_ttc"].agg(["count", "sum"])
        .sort_values("sum", ascending=False).head(5)
    )

    return {
        "total_mois": int((df["cree_le"] >= debut_mois).sum()),
        "en_cours": len(en_cours),
        "validees": int(df["statut"].isin(STATUTS_VALIDES).sum()),
        "exceptions": nb_exceptions,
        "montant_a_payer": float(df.loc[~df["statut"].isin(STATUTS_VALIDES), "montant_ttc"].sum()),
        "montant_paye": float(
            df.loc[df["statut"] == StatutFacture.COMPTABILISEE.value, "montant_ttc"].sum()
        ),
        "delai_moyen_jours": delai_moyen,
        "factures_en_retard": retards,
        "alertes": _alertes(
            len(top_retard),
            nb_exceptions,
            int(df["a_anomalies"].sum()),
            int((en_cours["montant_ttc"] > SEUIL_MONTANT_ELEVE).sum()),
        ),
        "par_statut": [
            {"status": r.statut, "count": int(r.nombre), "amount": float(r.montant)}
            for r in par_statut.itertuples()
        ],
        "par_jour": par_jour,
        "top_fournisseurs": [
            {"nom": nom, "count": int(r["count"]), "amount": float(r["sum"])}
            for nom, r in top.iterrows()
        ],
    }


def statistiques_en_cache(
    session: Session, cache: CachePort, ttl: int = 300, aujourd_hui: date | None = None
) -> dict:
    return get_or_compute(cache, CACHE_KEY, lambda: statistiques(session, aujourd_hui), ttl)
