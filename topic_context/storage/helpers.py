"""Shared helpers for storage backends."""

from __future__ import annotations

import json
from datetime import datetime, timezone


def dt_to_str(dt: datetime) -> str:
    return dt.isoformat()


def str_to_dt(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def optional_dt(s: str | None) -> datetime | None:
    return str_to_dt(s) if s else None


def load_json(raw: str | None, default):
    """Decode a JSON column, falling back to *default* for NULL or empty."""
    if not raw:
        return default
    return json.loads(raw)


def placeholders(values: list) -> str:
    """``?, ?, ?`` for an IN clause over *values*."""
    return ", ".join("?" for _ in values)
