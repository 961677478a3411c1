# app/modules/integrations/__init__.py
"""
Módulo Integrations - Sincronización con bodegas aliadas

Este módulo recibe los eventos que reportan los sistemas de bodega:
- Ingreso / upsert de paquetes (individual y masivo)
- Edición del aliado con estado reportado e historial solo ante cambios
- Cambios de estado con traducción de códigos externos
- Borrado lógico (individual y por lote)
- Consulta de paquete con historial y verificación de existencia
- Directorio de clientes para la bodega

Arquitectura:
- router.py: Endpoints de integración
- service.py: Reconciliación idempotente de paquetes
- repository.py: Acceso a datos de paquetes
- schemas.py: Modelos de request/response con alias del aliado
"""

from .router import router
from .service import PackageReconciliationService
from .repository import PackageRepository

__all__ = [
    "router",
    "PackageReconciliationService",
    "PackageRepository"
]
