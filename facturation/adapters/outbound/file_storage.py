"""Local filesystem adapter implementing StockagePort."""

from __future__ import annotations

import os
import re
import time

from domain.ports import StockagePort

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(filename: str, default: str = "facture.pdf") -> str:
    """Basename with every character outside ``[A-Za-z0-9._-]`` replaced by ``_``."""
    name = os.path.basename(filename or "")
    return _UNSAFE.sub("_", name) or default


class LocalFileStorage(StockagePort):
    """Stores invoice files under *root* as ``{timestamp_ms}_{safe name}``."""

    def __init__(self, root: str):
        self._root = os.path.abspath(root)

    def _path(self, chemin: str) -> str:
        full = os.path.abspath(os.path.join(self._root, chemin))
        if os.path.commonpath([full, self._root]) != self._root:
            raise ValueError(f"Chemin hors du stockage: {chemin}")
        return full

    def enregistrer(self, contenu: bytes, nom_fichier: str) -> str:
        os.makedirs(self._root, exist_ok=True)
        chemin = f"{int(time.time() * 1000)}_{safe_filename(nom_fichier)}"
        with open(self._path(chemin), "wb") as f:
            f.write(contenu)
        return chemin

    def lire(self, chemin: str) -> bytes:
        with open(self._path(chemin), "rb") as f:
            return f.read()
