# app/modules/manifests/__init__.py
"""
Módulo Manifests - Manifiestos de vuelo / ruta

- Upsert de manifiestos reportados por la bodega
- Vinculación de paquetes por AWB (tracking) y por código de control
"""

from .router import router
from .service import ManifestLinkerService
from .repository import ManifestRepository

__all__ = [
    "router",
    "ManifestLinkerService",
    "ManifestRepository"
]
