# app/core/auth/credentials.py
"""
Resolución de identidad para sistemas de bodega externos.

Las credenciales pueden llegar por varios portadores (headers, campo del
body JSON, query param). Cada extractor sabe leer uno solo; el
autenticador los prueba en orden y gana el primero que resuelve.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Sequence

from fastapi import Request
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.auth.service import AuthService
from app.shared.database.models import ApiKey
from app.shared.utils.dates import utcnow

logger = logging.getLogger(__name__)

ALL_PERMISSIONS = "*"


@dataclass(frozen=True)
class CallerIdentity:
    """Identidad normalizada del llamador; `identity` es la llave de rate limit y auditoría"""
    identity: str
    kind: str  # static_key | stored_key | session
    name: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has_permissions(self, required: Iterable[str]) -> bool:
        if ALL_PERMISSIONS in self.permissions:
            return True
        return all(permission in self.permissions for permission in required)


# ==================== EXTRACTORES ====================

class CredentialExtractor(ABC):
    """Lee un token de un único portador del request"""
    source: str = "unknown"

    @abstractmethod
    async def extract(self, request: Request) -> Optional[str]:
        ...


class HeaderCredentialExtractor(CredentialExtractor):
    def __init__(self, header_name: str):
        self.header_name = header_name
        self.source = f"header:{header_name}"

    async def extract(self, request: Request) -> Optional[str]:
        value = request.headers.get(self.header_name, "").strip()
        return value or None


class BodyTokenExtractor(CredentialExtractor):
    """Token dentro del body JSON: objeto con el campo, o primer elemento de la lista que lo tenga"""

    def __init__(self, field_name: str):
        self.field_name = field_name
        self.source = f"body:{field_name}"

    def _token_from(self, item) -> Optional[str]:
        if isinstance(item, dict):
            value = item.get(self.field_name)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    async def extract(self, request: Request) -> Optional[str]:
        body = await request.body()
        if not body:
            return None
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return None

        if isinstance(payload, list):
            for item in payload:
                token = self._token_from(item)
                if token:
                    return token
            return None
        return self._token_from(payload)


class QueryTokenExtractor(CredentialExtractor):
    """Para llamadores que no pueden enviar headers propios (endpoints de solo lectura)"""

    def __init__(self, param_name: str):
        self.param_name = param_name
        self.source = f"query:{param_name}"

    async def extract(self, request: Request) -> Optional[str]:
        value = request.query_params.get(self.param_name, "").strip()
        return value or None


def write_extractors() -> List[CredentialExtractor]:
    """Portadores aceptados en endpoints de escritura, en orden de prioridad"""
    return [
        HeaderCredentialExtractor(settings.partner_key_header),
        HeaderCredentialExtractor(settings.partner_api_key_header),
        BodyTokenExtractor(settings.partner_body_token_field),
    ]


def read_extractors() -> List[CredentialExtractor]:
    """Portadores aceptados en endpoints de solo lectura"""
    return [
        HeaderCredentialExtractor(settings.partner_key_header),
        HeaderCredentialExtractor(settings.partner_api_key_header),
        QueryTokenExtractor(settings.partner_query_token_param),
    ]


# ==================== AUTENTICADOR ====================

class PartnerAuthenticator:
    """Resuelve un request a una identidad autorizada o None"""

    def __init__(
        self,
        db: Session,
        extractors: Sequence[CredentialExtractor],
        allowed_keys: Optional[Sequence[str]] = None
    ):
        self.db = db
        self.extractors = list(extractors)
        self.allowed_keys = set(allowed_keys if allowed_keys is not None else settings.allowed_warehouse_keys)

    async def authenticate(self, request: Request, required_permissions: Sequence[str] = ()) -> Optional[CallerIdentity]:
        for extractor in self.extractors:
            token = await extractor.extract(request)
            if not token:
                continue

            identity = self.resolve_token(token, required_permissions)
            if identity:
                logger.debug(f"Credencial resuelta vía {extractor.source}: {identity.identity}")
                return identity

        return None

    def resolve_token(self, token: str, required_permissions: Sequence[str] = ()) -> Optional[CallerIdentity]:
        if token in self.allowed_keys:
            return CallerIdentity(
                identity=f"static_{AuthService.hash_api_key(token)[:12]}",
                kind="static_key",
                name="warehouse",
                permissions=frozenset({ALL_PERMISSIONS}),
            )

        if not AuthService.looks_like_stored_key(token):
            return None

        key_record = self.db.query(ApiKey).filter(
            ApiKey.key_hash == AuthService.hash_api_key(token),
            ApiKey.active.is_(True)
        ).first()

        if not key_record:
            return None

        if key_record.expires_at is not None and key_record.expires_at <= utcnow():
            logger.info(f"Llave {key_record.key_prefix} expirada")
            return None

        identity = CallerIdentity(
            identity=key_record.key_prefix,
            kind="stored_key",
            name=key_record.name,
            permissions=frozenset(key_record.permissions or []),
        )

        if not identity.has_permissions(required_permissions):
            logger.warning(
                f"⚠️ Llave {key_record.key_prefix} sin permisos {list(required_permissions)}"
            )
            return None

        self._record_usage(key_record.id)
        return identity

    def _record_usage(self, key_id: int) -> None:
        """Contador de uso best-effort: un fallo aquí no debe tumbar el request"""
        try:
            self.db.execute(
                update(ApiKey)
                .where(ApiKey.id == key_id)
                .values(usage_count=ApiKey.usage_count + 1, last_used_at=utcnow())
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ No se pudo registrar uso de llave {key_id}: {e}")
