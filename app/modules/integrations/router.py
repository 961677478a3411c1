# app/modules/integrations/router.py
from fastapi import APIRouter, Body, Depends, Path, Query, Response
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Union

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.credentials import CallerIdentity, read_extractors
from app.core.auth.dependencies import require_partner_access
from app.core.rate_limit import RateLimitConfig
from .service import PackageReconciliationService
from .schemas import (
    BulkOperationResponse, PackageDeleteRequest, PackageExistsResponse, PackageIntakeRequest,
    PackageStatusUpdateRequest
)

router = APIRouter()


def write_limit() -> RateLimitConfig:
    return RateLimitConfig(settings.rate_limit_window_ms, settings.partner_write_rate_limit)


def read_limit() -> RateLimitConfig:
    return RateLimitConfig(settings.rate_limit_window_ms, settings.partner_read_rate_limit)


@router.post("/packages/intake")
async def intake_package(
    intake: PackageIntakeRequest,
    response: Response,
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """
    Ingreso / upsert de paquete desde la bodega

    **Funcionalidad:**
    - Crea el paquete si no existe (genera tracking si no viene)
    - Si ya existe, actualiza solo los campos informados
    - Siempre agrega una entrada de historial `AtWarehouse`

    **Credenciales:** `x-warehouse-key`, `x-api-key`, campo `APIToken` o sesión de bodega
    """
    service = PackageReconciliationService(db)
    result = await service.intake(intake, caller)
    response.status_code = 201 if result["created"] else 200
    return result


@router.post("/packages/bulk-intake", response_model=BulkOperationResponse)
async def bulk_intake_packages(
    items: List[Any] = Body(..., description="Lista de paquetes en formato intake"),
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """
    Ingreso masivo: cada elemento se valida y guarda por separado.
    Un elemento inválido no afecta al resto.
    """
    service = PackageReconciliationService(db)
    return await service.bulk_intake(items, caller)


@router.post("/packages/edit", response_model=BulkOperationResponse)
async def edit_packages(
    items: List[Any] = Body(..., description="Lista de paquetes en formato de edición del aliado"),
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """
    Edición / upsert masivo desde la bodega

    **Funcionalidad:**
    - Requiere `TrackingNumber` y `UserCode` por elemento
    - El estado se traduce desde `PackageStatus`; sin código se conserva
    - El historial solo crece cuando el estado cambia
    - Guarda `ManifestID`, `PackageID`, `CourierID`, `CollectionID` y discrepancias
    """
    service = PackageReconciliationService(db)
    return await service.bulk_edit(items, caller)


@router.post("/packages/update-status")
async def update_package_status(
    update: PackageStatusUpdateRequest,
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """
    Cambio de estado reportado por la bodega

    **Códigos externos:**
    - 0: AtWarehouse
    - 1 / 2: InTransit
    - 3 / 4: AtLocalPort
    - otro: Unknown

    Si vienen `Weight`, `Shipper`, `Description` o `ManifestID` también se aplican.
    """
    service = PackageReconciliationService(db)
    return await service.update_status(update, caller)


@router.post("/packages/delete")
async def delete_package(
    delete: PackageDeleteRequest,
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """Borrado lógico: el paquete queda en `Deleted` con su historial completo"""
    service = PackageReconciliationService(db)
    return await service.soft_delete(delete, caller)


@router.post("/packages/bulk-delete", response_model=BulkOperationResponse)
async def bulk_delete_packages(
    payload: Union[List[Any], Dict[str, Any]] = Body(..., description="Objeto o lista con TrackingNumber"),
    caller: CallerIdentity = Depends(require_partner_access(["packages:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """Borrado lógico por lote; un tracking inexistente solo afecta a su elemento"""
    service = PackageReconciliationService(db)
    return await service.bulk_delete(payload, caller)


@router.get("/packages/exists", response_model=PackageExistsResponse)
async def package_exists(
    tracking: str = Query(..., description="Tracking number a consultar"),
    caller: CallerIdentity = Depends(
        require_partner_access(["packages:read"], read_limit, extractors=read_extractors)
    ),
    db: Session = Depends(get_db)
):
    """Indica si el tracking ya está registrado, sin devolver el paquete"""
    service = PackageReconciliationService(db)
    return await service.package_exists(tracking)


@router.get("/packages/{tracking_id}")
async def get_package(
    tracking_id: str = Path(..., description="Tracking number"),
    caller: CallerIdentity = Depends(
        require_partner_access(["packages:read"], read_limit, extractors=read_extractors)
    ),
    db: Session = Depends(get_db)
):
    """Paquete con su historial completo en orden de inserción"""
    service = PackageReconciliationService(db)
    return await service.get_package(tracking_id)


@router.get("/customers", response_model=List[Dict[str, str]])
async def pull_customers(
    caller: CallerIdentity = Depends(
        require_partner_access(["customers:read"], read_limit, extractors=read_extractors, allow_session=False)
    ),
    db: Session = Depends(get_db)
):
    """
    Directorio de clientes para la bodega

    **Uso:** `GET /api/v1/integrations/customers?id=<token>`
    """
    service = PackageReconciliationService(db)
    return await service.pull_customers()
