"""CSV/OFX imports: suppliers, purchase orders and bank statements.

Files are read with pandas as text columns; each importer returns the
parsed rows and leaves persistence to ``save_*`` helpers so the caller
can preview before committing.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.exceptions import ErreurValidation
from domain.models import SensTransaction
from domain.normalization import normalize_iban
from facturation.adapters.outbound.sqlalchemy_models import BonCommande, Fournisseur

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class ResultatImport:
    lignes: list[dict] = field(default_factory=list)
    erreurs: list[str] = field(default_factory=list)


def _lire_csv(contenu: str | bytes, sep) -> pd.DataFrame:
    if isinstance(contenu, bytes):
        contenu = contenu.decode("utf-8-sig")
    if len([l for l in contenu.splitlines() if l.strip()]) < 2:
        raise ErreurValidation(
            "Le fichier doit contenir au moins une ligne d'en-tête et une ligne de données"
        )
    df = pd.read_csv(
        io.StringIO(contenu),
        sep=sep,
        engine="python",
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        quotechar='"',
    )
    df.columns = [str(c).strip().strip('"').lower() for c in df.columns]
    return df.apply(lambda col: col.str.strip().str.strip('"'))


# ── Suppliers ───────────────────────────────────────────────────────────

COLONNES_FOURNISSEUR = {
    "name": "nom",
    "identifier": "identifiant",
    "email": "email",
    "phone": "telephone",
    "address": "adresse",
    "iban": "iban",
    "bic": "bic",
    "is_critical": "est_critique",
    "payment_terms_days": "delai_paiement_jours",
    "notes": "notes",
}

ALIAS_FOURNISSEUR = {
    "nom": "name",
    "identifiant": "identifier",
    "telephone": "phone",
    "adresse": "address",
    "critique": "is_critical",
    "delai_paiement": "payment_terms_days",
}


def parse_suppliers_csv(contenu: str | bytes) -> ResultatImport:
    """Parse a supplier CSV (``,`` or ``;``); bad rows are reported per line."""
    df = _lire_csv(contenu, sep="[,;]")
    df = df.rename(columns=ALIAS_FOURNISSEUR)
    if "name" not in df.columns:
        raise ErreurValidation('Colonne "name" ou "nom" requise')
    df = df[[c for c in df.columns if c in COLONNES_FOURNISSEUR]]

    resultat = ResultatImport()
    for index, row in df.iterrows():
        ligne = index + 2
        nom = row["name"]
        if not nom:
            resultat.erreurs.append(f"Ligne {ligne}: Nom manquant")
            continue
        email = row.get("email") or None
        if email and not EMAIL_RE.match(email):
            resultat.erreurs.append(f'Ligne {ligne}: Email invalide "{email}"')
            continue

        fournisseur = {"nom": nom}
        for colonne, attribut in COLONNES_FOURNISSEUR.items():
            if colonne in ("name", "is_critical", "payment_terms_days") or colonne not in df.columns:
                continue
            fournisseur[attribut] = row[colonne] or None
        if "is_critical" in df.columns:
            fournisseur["est_critique"] = row["is_critical"].lower() in ("true", "oui", "1")
        if "payment_terms_days" in df.columns:
            jours = pd.to_numeric(row["payment_terms_days"], errors="coerce")
            fournisseur["delai_paiement_jours"] = 30 if pd.isna(jours) else int(jours)
        resultat.lignes.append(fournisseur)
    return resultat


def save_suppliers(session: Session, fournisseurs: list[dict]) -> list[Fournisseur]:
    """Insert suppliers, updating the ones whose identifier already exists."""
    enregistres = []
    for donnees in fournisseurs:
        existant = None
        if donnees.get("identifiant"):
            existant = session.scalars(
                select(Fournisseur).where(Fournisseur.identifiant == donnees["identifiant"])
            ).first()
        if existant is None:
            existant = Fournisseur()
            session.add(existant)
        for attribut, valeur in donnees.items():
            setattr(existant, attribut, valeur)
        enregistres.append(existant)
    session.flush()
    logger.info("%d fournisseurs importés", len(enregistres))
    return enregistres


# ── Purchase orders ─────────────────────────────────────────────────────

COLONNES_BC_REQUISES = ("po_number", "amount_ht", "amount_ttc", "order_date")


def _montant(valeur: str) -> float:
    nombre = pd.to_numeric(valeur, errors="coerce")
    return 0.0 if pd.isna(nombre) else float(nombre)


def parse_purchase_orders_csv(contenu: str | bytes) -> list[dict]:
    """Parse a ``;`` separated purchase-order CSV.

    Any invalid row fails the whole file.
    """
    df = _lire_csv(contenu, sep=";")
    manquantes = [c for c in COLONNES_BC_REQUISES if c not in df.columns]
    if manquantes:
        raise ErreurValidation(f"Colonnes manquantes: {', '.join(manquantes)}")

    bons = []
    for index, row in df.iterrows():
        ligne = index + 2
        if not row["po_number"]:
            raise ErreurValidation(f"Ligne {ligne}: Numéro de BC manquant")
        if not row["order_date"]:
            raise ErreurValidation(f"Ligne {ligne}: Date de commande manquante")
        bons.append({
            "numero": row["po_number"],
            "montant_ht": _montant(row["amount_ht"]),
            "montant_tva": _montant(row.get("amount_tva", "")),
            "montant_ttc": _montant(row["amount_ttc"]),
            "devise": row.get("currency") or "EUR",
            "description": row.get("description") or None,
            "statut": row.get("status") or "actif",
            "date_commande": parse_date(row["order_date"]),
            "date_livraison_prevue": parse_date(row.get("expected_delivery_date", "")),
        })
    return bons


def save_purchase_orders(session: Session, bons: list[dict]) -> list[BonCommande]:
    enregistres = [BonCommande(**bon) for bon in bons]
    session.add_all(enregistres)
    session.flush()
    logger.info("%d bons de commande importés", len(enregistres))
    return enregistres


# ── Bank statements ─────────────────────────────────────────────────────

_FORMATS_DATE = (
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), (1, 2, 3)),
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), (3, 2, 1)),
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), (3, 2, 1)),
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$"), (3, 2, 1)),
)


def parse_date(valeur: str | None) -> date | None:
    """Parse ISO, ``DD/MM/YYYY``, ``DD-MM-YYYY`` or ``DD.MM.YYYY`` dates."""
    if not valeur:
        return None
    valeur = valeur.strip()
    for motif, (a, m, j) in _FORMATS_DATE:
        trouve = motif.match(valeur)
        if trouve:
            try:
                return date(int(trouve.group(a)), int(trouve.group(m)), int(trouve.group(j)))
            except ValueError:
                return None
    horodatage = pd.to_datetime(valeur, errors="coerce")
    return None if pd.isna(horodatage) else horodatage.date()


def parse_amount(valeur: str | None) -> tuple[float, SensTransaction] | None:
    """Parse a signed amount; negative amounts are debits."""
    if not valeur:
        return None
    nettoye = re.sub(r"[€$£\s ]", "", valeur)
    if "," in nettoye and "." in nettoye:
        if nettoye.rfind(",") > nettoye.rfind("."):
            nettoye = nettoye.replace(".", "").replace(",", ".")
        else:
            nettoye = nettoye.replace(",", "")
    elif "," in nettoye:
        nettoye = nettoye.replace(",", ".", 1)
    try:
        montant = float(nettoye)
    except ValueError:
        return None
    sens = SensTransaction.DEBIT if montant < 0 else SensTransaction.CREDIT
    return abs(montant), sens


def auto_mapping(colonnes: list[str]) -> dict[str, str]:
    """Guess which CSV column holds each transaction field from its header."""
    mapping: dict[str, str] = {}
    for colonne in colonnes:
        c = colonne.lower()
        if "date" in c and "valeur" not in c and "value" not in c:
            mapping.setdefault("date", colonne)
        if "valeur" in c or "value" in c:
            mapping["value_date"] = colonne
        if any(m in c for m in ("montant", "amount", "somme")):
            mapping["amount"] = colonne
        if any(m in c for m in ("description", "libellé", "libelle", "label")):
            mapping["description"] = colonne
        if any(m in c for m in ("référence", "reference", "ref")):
            mapping["reference"] = colonne
        if any(m in c for m in ("contrepartie", "beneficiaire", "payee", "nom")):
            mapping["counterparty"] = colonne
        if "iban" in c:
            mapping["iban"] = colonne
    return mapping


def parse_bank_csv(contenu: str | bytes, mapping: dict[str, str] | None = None) -> list[dict]:
    """Parse a bank CSV into transaction dicts; rows without date or amount are skipped."""
    df = _lire_csv(contenu, sep=None)
    mapping = {**auto_mapping(list(df.columns)), **(mapping or {})}
    if not mapping.get("date") or not mapping.get("amount"):
        raise ErreurValidation("Les colonnes date et montant doivent être associées")

    def valeur(row, cle):
        colonne = mapping.get(cle)
        return (row.get(colonne) or None) if colonne else None

    transactions = []
    for _, row in df.iterrows():
        jour = parse_date(valeur(row, "date"))
        montant = parse_amount(valeur(row, "amount"))
        if jour is None or montant is None:
            continue
        transactions.append({
            "date_operation": jour,
            "date_valeur": parse_date(valeur(row, "value_date")),
            "montant": montant[0],
            "sens": montant[1].value,
            "description": valeur(row, "description"),
            "reference_bancaire": valeur(row, "reference"),
            "nom_contrepartie": valeur(row, "counterparty"),
            "iban_contrepartie": normalize_iban(valeur(row, "iban")),
        })
    return transactions


_STMTTRN_RE = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)


def _balise(bloc: str, nom: str) -> str:
    trouve = re.search(rf"<{nom}>([^<\n]+)", bloc, re.IGNORECASE)
    return trouve.group(1).strip() if trouve else ""


def parse_ofx(contenu: str | bytes) -> list[dict]:
    """Extract the ``<STMTTRN>`` blocks of an OFX statement."""
    if isinstance(contenu, bytes):
        contenu = contenu.decode("utf-8", errors="replace")
    transactions = []
    for bloc in _STMTTRN_RE.findall(contenu):
        posted = _balise(bloc, "DTPOSTED")
        try:
            montant = float(_balise(bloc, "TRNAMT"))
        except ValueError:
            montant = 0.0
        if len(posted) < 8:
            continue
        try:
            jour = date(int(posted[0:4]), int(posted[4:6]), int(posted[6:8]))
        except ValueError:
            continue
        transactions.append({
            "date_operation": jour,
            "montant": abs(montant),
            "sens": (SensTransaction.DEBIT if montant < 0 else SensTransaction.CREDIT).value,
            "description": _balise(bloc, "NAME") or _balise(bloc, "MEMO"),
            "reference_bancaire": _balise(bloc, "FITID") or None,
        })
    if not transactions:
        raise ErreurValidation("Aucune transaction trouvée dans le fichier OFX.")
    return transactions


def parse_bank_statement(
    nom_fichier: str, contenu: str | bytes, mapping: dict[str, str] | None = None
) -> tuple[str, list[dict]]:
    """Dispatch on the file extension; returns ``(format, transactions)``."""
    extension = nom_fichier.rsplit(".", 1)[-1].lower() if "." in nom_fichier else ""
    if extension == "csv":
        return "csv", parse_bank_csv(contenu, mapping)
    if extension in ("ofx", "qfx"):
        return "ofx", parse_ofx(contenu)
    raise ErreurValidation("Format non supporté. Utilisez un fichier CSV ou OFX.")
