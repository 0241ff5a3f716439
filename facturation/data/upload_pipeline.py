"""Upload pipeline for invoice file ingestion.

Validates the uploaded file, deduplicates it via its content hash,
stores it and creates the invoice row in status ``nouvelle``. OCR is
triggered by the caller once the invoice is committed.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from domain.models import EntreeAudit, StatutFacture, StatutImport
from domain.ports import StockagePort
from facturation.adapters.outbound.sqlalchemy_models import Facture, JournalImport
from facturation.adapters.outbound.sqlalchemy_repos import SqlAlchemyAuditRepository

logger = logging.getLogger(__name__)

ALLOWED_TYPES = ("application/pdf", "image/jpeg", "image/png", "image/tiff")
MAX_FILE_SIZE = 20 * 1024 * 1024
LIBELLES_TYPES = {
    "application/pdf": "PDF",
    "image/jpeg": "JPG",
    "image/png": "PNG",
    "image/tiff": "TIFF",
}


@dataclass
class ResultatIngestion:
    succes: bool
    facture_id: int | None = None
    journal_id: int | None = None
    doublon: bool = False
    erreur: str | None = None
    chemin: str | None = None


def validate_file(
    filename: str,
    size: int,
    content_type: str | None = None,
    allowed_types=ALLOWED_TYPES,
    max_size: int = MAX_FILE_SIZE,
) -> str | None:
    """Return an error message, or None when the file is acceptable."""
    mime = content_type or mimetypes.guess_type(filename)[0]
    if mime not in allowed_types:
        acceptes = ", ".join(LIBELLES_TYPES.get(t, t) for t in allowed_types)
        return f"Type de fichier non supporté. Types acceptés: {acceptes}"
    if size > max_size:
        return f"Fichier trop volumineux. Taille max: {max_size // (1024 * 1024)}MB"
    return None


def compute_hash(file_bytes: bytes) -> str:
    return hashlib.sha256(file_bytes).hexdigest()


def check_duplicate(session: Session, content_hash: str) -> Facture | None:
    """Return the invoice already imported with the same content hash, if any."""
    stmt = select(Facture).where(Facture.hash_fichier == content_hash)
    return session.scalars(stmt).first()


def create_import_record(
    session: Session,
    filename: str,
    content_hash: str,
    file_size: int,
    imported_by: str | None = None,
    status: StatutImport = StatutImport.PROCESSING,
) -> JournalImport:
    record = JournalImport(
        nom_fichier=filename,
        hash_fichier=content_hash,
        taille_fichier=file_size,
        importe_par=imported_by,
        statut=status.value,
    )
    session.add(record)
    session.flush()
    return record


def ingest_upload(
    session: Session,
    storage: StockagePort,
    file_bytes: bytes,
    filename: str,
    content_type: str | None = None,
    imported_by: str | None = None,
    max_size: int = MAX_FILE_SIZE,
    allowed_types=ALLOWED_TYPES,
) -> ResultatIngestion:
    """Validate, deduplicate, store and register one uploaded invoice file."""
    erreur = validate_file(
        filename, len(file_bytes), content_type, allowed_types=allowed_types, max_size=max_size
    )
    if erreur:
        return ResultatIngestion(succes=False, erreur=erreur)

    content_hash = compute_hash(file_bytes)
    existante = check_duplicate(session, content_hash)
    if existante is not None:
        record = create_import_record(
            session, filename, content_hash, len(file_bytes), imported_by,
            status=StatutImport.DUPLICATE,
        )
        record.doublon_de = existante.id
        record.message_erreur = f"Doublon détecté. Facture existante: {existante.id}"
        session.flush()
        logger.info("Doublon ignoré: %s (facture %s)", filename, existante.id)
        return ResultatIngestion(
            succes=False,
            doublon=True,
            facture_id=existante.id,
            journal_id=record.id,
            erreur="Ce fichier a déjà été importé",
        )

    record = create_import_record(session, filename, content_hash, len(file_bytes), imported_by)
    try:
        chemin = storage.enregistrer(file_bytes, filename)
    except OSError as exc:
        logger.error("Stockage de %s impossible: %s", filename, exc)
        record.statut = StatutImport.FAILED.value
        record.message_erreur = str(exc)
        session.flush()
        return ResultatIngestion(succes=False, journal_id=record.id, erreur=str(exc))

    facture = Facture(
        fichier=chemin,
        nom_fichier=filename,
        hash_fichier=content_hash,
        taille_fichier=len(file_bytes),
        source="upload",
        statut=StatutFacture.NOUVELLE.value,
    )
    session.add(facture)
    session.flush()

    record.statut = StatutImport.SUCCESS.value
    record.facture_id = facture.id
    SqlAlchemyAuditRepository(session).enregistrer(EntreeAudit(
        type_entite="invoice",
        entite_id=facture.id,
        action="created",
        changements={"source": "upload", "filename": filename},
        effectue_par=imported_by,
    ))
    session.flush()
    return ResultatIngestion(
        succes=True, facture_id=facture.id, journal_id=record.id, chemin=chemin
    )


def list_import_logs(session: Session, limit: int = 50) -> list[JournalImport]:
    stmt = select(JournalImport).order_by(JournalImport.cree_le.desc(), JournalImport.id.desc())
    return list(session.scalars(stmt.limit(limit)))