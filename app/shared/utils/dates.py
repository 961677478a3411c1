# app/shared/utils/dates.py
import re
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Fecha actual en UTC, sin tzinfo (como se guarda en la base de datos)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_partner_datetime(value: Any) -> Optional[datetime]:
    """
    Interpretar fechas enviadas por los sistemas de bodega.

    Acepta datetime, ISO-8601 o formatos libres que entienda dateutil.
    Las fechas sin hora ("2025-01-19") se normalizan a las 00:00 UTC.
    Devuelve None si el valor no se puede interpretar.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None

    raw = value.strip()
    if DATE_ONLY_PATTERN.match(raw):
        return datetime.strptime(raw, "%Y-%m-%d")

    try:
        return to_naive_utc(date_parser.parse(raw))
    except (ValueError, OverflowError):
        return None


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
