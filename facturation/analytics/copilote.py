"""Live business figures given to the finance copilot."""

from __future__ import annotations

import math
from datetime import date

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from domain.models import StatutFacture, StatutLitige
from facturation.adapters.outbound.sqlalchemy_models import Fournisseur, Litige
from facturation.analytics.tableau_de_bord import (
    durees_traitement,
    factures_dataframe,
    factures_en_retard,
)

STATUTS_A_PAYER = (StatutFacture.PRETE_COMPTABILISATION.value, StatutFacture.A_APPROUVER.value)


def contexte_metier(session: Session, aujourd_hui: date | None = None) -> dict:
    """Figures consumed by ``domain.assistant_ia.prompt_copilote``."""
    aujourd_hui = aujourd_hui or date.today()
    df = factures_dataframe(session)
    debut_mois = pd.Timestamp(aujourd_hui.replace(day=1)).tz_localize("UTC")

    retard = factures_en_retard(df, aujourd_hui, (StatutFacture.COMPTABILISEE.value,))
    top_retard = [
        {
            "numero_facture": r.numero_facture,
            "fournisseur": r.nom_fournisseur_extrait,
            "montant": float(r.montant_ttc),
            "jours_retard": int(r.jours_retard),
        }
        for r in retard.head(5).itertuples()
    ]

    avec_fournisseur = df.dropna(subset=["fournisseur_id"])
    top = (
        avec_fournisseur.assign(nom=avec_fournisseur["nom_fournisseur_extrait"].fillna("Inconnu"))
        .groupby("fournisseur_id")
        .agg(nom=("nom", "first"), montant=("montant_ttc", "sum"), nombre=("id", "count"))
        .sort_values("montant", ascending=False)
        .head(5)
    )

    durees = durees_traitement(df)
    delai_moyen = round(durees.apply(math.floor).mean()) if not durees.empty else 0

    litiges_ouverts = session.scalar(
        select(func.count(Litige.id)).where(Litige.statut != StatutLitige.RESOLVED.value)
    )
    return {
        "total": len(df),
        "ce_mois": int((df["cree_le"] >= debut_mois).sum()),
        "par_statut": {k: int(v) for k, v in df["statut"].value_counts(sort=False).items()},
        "montant_a_payer": float(df.loc[df["statut"].isin(STATUTS_A_PAYER), "montant_ttc"].sum()),
        "montant_paye": float(
            df.loc[df["statut"] == StatutFacture.COMPTABILISEE.value, "montant_ttc"].sum()
        ),
        "retards": {
            "nombre": len(retard),
            "montant": float(retard["montant_ttc"].sum()),
            "top": top_retard,
        },
        "avec_anomalies": int(df["a_anomalies"].sum()),
        "exceptions": int((df["statut"] == StatutFacture.EXCEPTION.value).sum()),
        "litiges_ouverts": litiges_ouverts or 0,
        "delai_moyen_jours": int(delai_moyen),
        "nb_fournisseurs": session.scalar(select(func.count(Fournisseur.id))) or 0,
        "top_fournisseurs": [
            {"nom": r["nom"], "montant": float(r["montant"]), "nombre": int(r["nombre"])}
            for _, r in top.iterrows()
        ],
    }
