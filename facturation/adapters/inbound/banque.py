"""Bank statement import and payment reconciliation."""

from __future__ import annotations

import json
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy.orm import Session

from facturation.adapters.inbound.dependances import get_session, utilisateur_optionnel
from facturation.adapters.inbound.serialisation import ligne, lignes
from facturation.data import banque
from facturation.data.imports import parse_bank_statement

router = APIRouter(prefix="/banque", tags=["banque"])


class DemandeRapprochement(BaseModel):
    facture_id: int
    confiance: int | None = None
    methode: Literal["manual", "auto"] = "manual"


@router.post("/releves", status_code=201)
async def importer_releve(
    fichier: UploadFile = File(...),
    compte: str | None = Form(default=None),
    mapping: str | None = Form(default=None),
    session: Session = Depends(get_session),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    """Import a CSV or OFX statement; *mapping* is an optional JSON column mapping."""
    nom = fichier.filename or "releve.csv"
    format_fichier, transactions = parse_bank_statement(
        nom, await fichier.read(), json.loads(mapping) if mapping else None
    )
    releve = banque.create_statement(
        session, nom, transactions, format_fichier=format_fichier,
        compte=compte, importe_par=utilisateur,
    )
    return ligne(releve)


@router.get("/releves")
def releves(session: Session = Depends(get_session)):
    return lignes(banque.list_statements(session))


@router.get("/transactions")
def transactions(releve_id: int | None = None, session: Session = Depends(get_session)):
    return lignes(banque.list_transactions(session, releve_id))


@router.get("/transactions/non-rapprochees")
def non_rapprochees(session: Session = Depends(get_session)):
    return lignes(banque.list_unmatched_debits(session))


@router.get("/statistiques")
def statistiques(session: Session = Depends(get_session)):
    return banque.reconciliation_stats(session)


@router.get("/transactions/{transaction_id}/suggestions")
def suggestions(transaction_id: int, session: Session = Depends(get_session)):
    return jsonable_encoder(banque.suggestions(session, transaction_id))


@router.post("/transactions/{transaction_id}/rapprocher")
def rapprocher(
    transaction_id: int,
    demande: DemandeRapprochement,
    session: Session = Depends(get_session),
    utilisateur: str | None = Depends(utilisateur_optionnel),
):
    return ligne(banque.match_transaction(
        session, transaction_id, demande.facture_id, utilisateur,
        confiance=demande.confiance, methode=demande.methode,
    ))


@router.post("/transactions/{transaction_id}/annuler")
def annuler(transaction_id: int, session: Session = Depends(get_session)):
    return ligne(banque.unmatch_transaction(session, transaction_id))


@router.post("/transactions/{transaction_id}/ignorer")
def ignorer(transaction_id: int, session: Session = Depends(get_session)):
    return ligne(banque.ignore_transaction(session, transaction_id))
