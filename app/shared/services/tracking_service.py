# app/shared/services/tracking_service.py
import re
import secrets
from datetime import datetime, timezone
from typing import Optional

# Sin caracteres confundibles (0/O, 1/I)
TRACKING_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_BODY_LENGTH = 6

LONG_TRACKING_PATTERN = re.compile(
    rf"^([A-Z]{{3}})-(\d{{8}})-([{TRACKING_ALPHABET}]{{{RANDOM_BODY_LENGTH}}})-([0-9A-Z])$"
)


class TrackingNumberService:
    """
    Generación y validación de tracking numbers autoverificables.

    Formato largo:  PREFIX-YYYYMMDD-RRRRRR-C  (ej. TAS-20250119-A3F7K2-X)
    Formato corto:  PREFIX-RRRRRR             (sin checksum)

    El dígito C es la suma de los códigos de caracter de "PREFIX-YYYYMMDD-RRRRRR"
    módulo 36, en base 36 y mayúscula.
    """

    SHORT = "short"
    LONG = "long"

    @staticmethod
    def checksum(base: str) -> str:
        """Calcular el caracter de verificación de una base"""
        total = sum(ord(char) for char in base)
        return BASE36_DIGITS[total % 36]

    @staticmethod
    def random_body(length: int = RANDOM_BODY_LENGTH) -> str:
        return "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(length))

    @staticmethod
    def generate(prefix: str = "TAS", mode: str = "long", now: Optional[datetime] = None) -> str:
        """Generar un tracking number nuevo; la unicidad la garantiza quien lo persiste"""
        prefix = (prefix or "TAS").strip().upper()
        body = TrackingNumberService.random_body()

        if mode == TrackingNumberService.SHORT:
            return f"{prefix}-{body}"

        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        base = f"{prefix}-{moment.strftime('%Y%m%d')}-{body}"
        return f"{base}-{TrackingNumberService.checksum(base)}"

    @staticmethod
    def validate(tracking_id) -> bool:
        """Validar estructura y checksum sin consultar la base de datos. Nunca lanza excepciones."""
        if not isinstance(tracking_id, str):
            return False

        match = LONG_TRACKING_PATTERN.match(tracking_id)
        if not match:
            return False

        prefix, date_part, body, check = match.groups()
        base = f"{prefix}-{date_part}-{body}"
        return check == TrackingNumberService.checksum(base)
