"""ORM rows to JSON-ready dicts."""

from __future__ import annotations

from fastapi.encoders import jsonable_encoder


def ligne(orm) -> dict:
    """Column values of one ORM row."""
    return jsonable_encoder({c.name: getattr(orm, c.name) for c in orm.__table__.columns})


def lignes(rows) -> list[dict]:
    return [ligne(r) for r in rows]
