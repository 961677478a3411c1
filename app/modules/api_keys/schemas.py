# app/modules/api_keys/schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime

PARTNER_PERMISSIONS = (
    "packages:write",
    "packages:read",
    "manifests:write",
    "customers:read",
)


class ApiKeyCreate(BaseModel):
    """Emisión de llave para un sistema de bodega"""
    name: str = Field(..., min_length=1, max_length=255, description="Nombre del sistema aliado")
    permissions: List[str] = Field(default_factory=lambda: list(PARTNER_PERMISSIONS))
    expires_in_days: Optional[int] = Field(None, ge=1, le=3650, description="Días de vigencia; vacío = sin expiración")
    live: bool = Field(True, description="wh_live_ (producción) o wh_test_")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Bodega Miami",
            "permissions": ["packages:write", "manifests:write"],
            "expires_in_days": 365
        }
    })

    @field_validator("permissions")
    @classmethod
    def known_permissions(cls, value: List[str]) -> List[str]:
        unknown = [permission for permission in value if permission not in PARTNER_PERMISSIONS]
        if unknown:
            raise ValueError(f"Permisos desconocidos: {unknown}")
        if not value:
            raise ValueError("Se requiere al menos un permiso")
        return sorted(set(value))


class ApiKeyResponse(BaseModel):
    id: int
    key_prefix: str
    name: str
    permissions: List[str]
    active: bool
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    usage_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Incluye la llave en claro; solo se devuelve una vez"""
    key: str
