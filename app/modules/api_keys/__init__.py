# app/modules/api_keys/__init__.py
"""
Módulo API Keys - Llaves para sistemas de bodega

Solo administradores. Se guarda el hash SHA-256 y un prefijo visible.
"""

from .router import router
from .service import ApiKeyService

__all__ = [
    "router",
    "ApiKeyService"
]
