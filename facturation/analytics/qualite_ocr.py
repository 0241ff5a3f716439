import pandas as pd
from sqlalchemy.orm import Session

from domain.models import StatutFacture
from facturation.adapters.outbound.sqlalchemy_models import Facture, Fournisseur

SEUIL_CONFIANCE_FAIBLE = 0.7
NB_MOIS = 12


def _scores(session: Session) -> pd.DataFrame:
    rows = (
        session.query(
            Facture.id, Facture.score_confiance_ocr, Facture.statut, Facture.cree_le,
            Facture.fournisseur_id, Fournisseur.nom,
        )
        .outerjoin(Fournisseur, Facture.fournisseur_id == Fournisseur.id)
        .order_by(Facture.cree_le.asc())
        .all()
    )
    df = pd.DataFrame(rows, columns=[
        "id", "score", "statut", "cree_le", "fournisseur_id", "fournisseur",
    ])
    df["score"] = pd.to_numeric(df["score"])
    df["cree_le"] = pd.to_datetime(df["cree_le"], utc=True)
    return df


def statistiques_globales(session: Session, seuil: float = SEUIL_CONFIANCE_FAIBLE) -> dict:
    df = _scores(session)
    total = len(df)
    avec_score = df.dropna(subset=["score"])
    nb_faibles = int((avec_score["score"] < seuil).sum())

    par_mois = (
        avec_score.groupby(avec_score["cree_le"].dt.strftime("%Y-%m"))["score"]
        .agg(["mean", "count"])
        .sort_index()
        .tail(NB_MOIS)
    )
    return {
        "total": total,
        "confiance_moyenne": float(avec_score["score"].mean()) if not avec_score.empty else 0,
        "nb_confiance_faible": nb_faibles,
        "nb_a_valider": int((df["statut"] == StatutFacture.A_VALIDER_EXTRACTION.value).sum()),
        "nb_validees": int((~df["statut"].isin([
            StatutFacture.NOUVELLE.value, StatutFacture.A_VALIDER_EXTRACTION.value,
        ])).sum()),
        "taux_erreur": nb_faibles / total * 100 if total else 0,
        "par_mois": [
            {"mois": mois, "confiance_moyenne": float(r["mean"]), "nombre": int(r["count"])}
            for mois, r in par_mois.iterrows()
        ],
    }


def statistiques_par_fournisseur(
    session: Session, seuil: float = SEUIL_CONFIANCE_FAIBLE
) -> pd.DataFrame:
    """Per linked supplier: volume, mean confidence, low-confidence rate.

    Sorted by invoice count, largest first.
    """
    df = _scores(session).dropna(subset=["fournisseur_id"])
    colonnes = [
        "fournisseur_id", "fournisseur", "nb_factures", "confiance_moyenne",
        "nb_confiance_faible", "nb_a_valider", "derniere_facture", "taux_erreur",
    ]
    if df.empty:
        return pd.DataFrame(columns=colonnes)

    df = df.assign(
        faible=df["score"] < seuil,
        a_valider=df["statut"] == StatutFacture.A_VALIDER_EXTRACTION.value,
        fournisseur=df["fournisseur"].fillna("Inconnu"),
    )
    stats = (
        df.groupby(["fournisseur_id", "fournisseur"])
        .agg(
            nb_factures=("id", "count"),
            confiance_moyenne=("score", "mean"),
            nb_confiance_faible=("faible", "sum"),
            nb_a_valider=("a_valider", "sum"),
            derniere_facture=("cree_le", "max"),
        )
        .reset_index()
    )
    stats["fournisseur_id"] = stats["fournisseur_id"].astype(int)
    stats["taux_erreur"] = stats["nb_confiance_faible"] / stats["nb_factures"] * 100
    return stats[colonnes].sort_values("nb_factures", ascending=False).reset_index(drop=True)
