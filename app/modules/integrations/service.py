# app/modules/integrations/service.py
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, Union
from datetime import datetime
from decimal import Decimal
from fastapi import HTTPException
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from app.config.settings import settings
from app.core.auth.credentials import CallerIdentity
from app.core.errors import (
    ConflictError, InternalServerError, NotFoundError, ValidationFailedError, format_validation_errors
)
from app.shared.database.models import Package, PackageStatus
from app.shared.services.status_mapping import StatusTranslator
from app.shared.services.tracking_service import TrackingNumberService
from app.shared.utils.dates import isoformat_utc, utcnow
from app.shared.utils.payloads import merge_payload
from .repository import PackageRepository
from .schemas import (
    PackageDeleteRequest, PackageEditRequest, PackageIntakeRequest, PackageStatusUpdateRequest
)

logger = logging.getLogger(__name__)

# Orden de avance normal; solo se usa para registrar retrocesos en el log
STATUS_PROGRESSION = {
    PackageStatus.AT_WAREHOUSE: 1,
    PackageStatus.IN_TRANSIT: 2,
    PackageStatus.AT_LOCAL_PORT: 3,
    PackageStatus.DELIVERED: 4,
}

INTAKE_NOTE = "Received via warehouse integration"
EDIT_NOTE = "Updated via warehouse integration edit"
DELETE_NOTE = "Deleted via warehouse integration"


def _number(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _raw_tracking(item: Any) -> Optional[str]:
    """Tracking tal como lo envió el aliado, para reportar elementos inválidos"""
    if not isinstance(item, dict):
        return None
    value = item.get("TrackingNumber") or item.get("tracking_id") or item.get("trackingId")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def serialize_history(package: Package) -> List[Dict[str, Any]]:
    return [
        {
            "status": entry.status,
            "at": isoformat_utc(entry.at),
            "note": entry.note,
            "location": entry.location,
            "updated_by": entry.updated_by,
        }
        for entry in package.history
    ]


def serialize_package(package: Package, include_history: bool = True) -> Dict[str, Any]:
    data = {
        "tracking_id": package.tracking_id,
        "customer_id": package.customer_id,
        "external_customer_code": package.external_customer_code,
        "status": package.status.value,
        "status_label": StatusTranslator.internal_label(package.status),
        "external_status_code": package.external_status_code,
        "external_status_label": package.external_status_label,
        "manifest_id": package.manifest_id,
        "control_number": package.control_number,
        "branch": package.branch,
        "weight": _number(package.weight),
        "shipper": package.shipper,
        "description": package.description,
        "dimensions": {
            "length": _number(package.length),
            "width": _number(package.width),
            "height": _number(package.height),
        },
        "pieces": package.pieces,
        "cubes": _number(package.cubes),
        "service_type_id": package.service_type_id,
        "service_type_name": package.service_type_name,
        "first_name": package.first_name,
        "last_name": package.last_name,
        "entry_staff": package.entry_staff,
        "entry_date": isoformat_utc(package.entry_date),
        "hs_code": package.hs_code,
        "external_package_id": package.external_package_id,
        "courier_id": package.courier_id,
        "collection_id": package.collection_id,
        "discrepancy": package.discrepancy,
        "discrepancy_description": package.discrepancy_description,
        "integration_payload": package.integration_payload or {},
        "created_at": isoformat_utc(package.created_at),
        "updated_at": isoformat_utc(package.updated_at),
        "history_length": len(package.history),
    }
    if include_history:
        data["history"] = serialize_history(package)
    return data


class PackageReconciliationService:
    """
    Aplica eventos de bodegas aliadas (ingreso, estado, borrado) sobre el
    registro del paquete con semántica idempotente.

    Cada operación es una transacción: o se guarda todo (paquete + entrada
    de historial) o nada.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = PackageRepository(db)

    # ==================== INGRESO / UPSERT ====================

    async def intake(self, request: PackageIntakeRequest, caller: CallerIdentity) -> Dict[str, Any]:
        supplied_id = request.tracking_id

        if supplied_id and settings.enforce_tracking_checksum and not TrackingNumberService.validate(supplied_id):
            raise ValidationFailedError(
                "Tracking number inválido",
                [{"field": "tracking_id", "message": "Checksum o formato inválido"}]
            )

        package, created = self._save_with_retry(
            "intake",
            supplied_id or self._new_tracking_id(),
            lambda tracking_id: self._upsert(tracking_id, request, caller),
            regenerate=not supplied_id
        )

        logger.info(
            f"✅ Intake {'creado' if created else 'actualizado'}: {package.tracking_id} "
            f"cliente={package.external_customer_code} por {caller.identity}"
        )

        response = serialize_package(package, include_history=False)
        response.update({
            "success": True,
            "created": created,
            "received_date": response["entry_date"] or response["created_at"],
            "received_by": package.entry_staff,
            "warehouse": package.branch,
        })
        return response

    def _new_tracking_id(self) -> str:
        return TrackingNumberService.generate(settings.tracking_prefix, settings.tracking_mode)

    def _save_with_retry(
        self,
        operation: str,
        tracking_id: str,
        upsert: Callable[[str], Tuple[Package, bool]],
        regenerate: bool = False
    ) -> Tuple[Package, bool]:
        """
        Ejecuta el upsert y hace commit, con un solo reintento ante conflicto
        de unicidad en la creación. Si el tracking fue generado aquí se
        genera otro; si lo envió el aliado se vuelve a leer y se actualiza.
        """
        for attempt in (1, 2):
            try:
                package, created = upsert(tracking_id)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                if attempt == 2:
                    logger.error(f"❌ Conflicto persistente en {operation} tracking={tracking_id}: {e}")
                    raise ConflictError(f"No se pudo registrar el paquete {tracking_id}: conflicto de unicidad")
                logger.warning(f"⚠️ Conflicto de unicidad en {operation} tracking={tracking_id}, reintentando")
                if regenerate:
                    tracking_id = self._new_tracking_id()
            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception(f"❌ Error de base de datos en {operation} tracking={tracking_id}: {e}")
                raise InternalServerError("Error guardando el paquete")

        self.db.refresh(package)
        return package, created

    def _lock_owner_and_package(self, tracking_id: str, customer_code: str, now: datetime) -> Tuple[Package, bool]:
        customer = self.repository.get_customer_for_update(customer_code)
        if not customer:
            raise NotFoundError(f"Cliente {customer_code} no encontrado")

        package = self.repository.get_by_tracking_id(tracking_id, for_update=True)
        created = package is None

        if created:
            package = self.repository.create_package(tracking_id, customer, created_at=now)
        elif package.customer_id != customer.id:
            # El dueño es inmutable; se registra la discrepancia
            logger.warning(
                f"⚠️ Ingreso de {tracking_id} con cliente {customer.user_code} distinto al dueño "
                f"{package.external_customer_code}; se conserva el dueño original"
            )
        return package, created

    def _apply_partner_fields(self, package: Package, request: PackageIntakeRequest) -> None:
        for name, value in request.descriptive_values().items():
            setattr(package, name, value)

        if request.service_type_id is not None:
            package.service_type_name = StatusTranslator.service_type_name(request.service_type_id)

        if request.external_status_code is not None:
            package.external_status_code = StatusTranslator.normalize_code(request.external_status_code)
            package.external_status_label = StatusTranslator.to_display_label(request.external_status_code)

        extra = request.extra_payload()
        if extra:
            package.integration_payload = merge_payload(package.integration_payload, extra)

    def _upsert(
        self,
        tracking_id: str,
        request: PackageIntakeRequest,
        caller: CallerIdentity
    ) -> Tuple[Package, bool]:
        now = utcnow()
        package, created = self._lock_owner_and_package(tracking_id, request.external_customer_code, now)
        self._apply_partner_fields(package, request)

        package.status = PackageStatus.AT_WAREHOUSE
        package.updated_at = now

        self.repository.add_history(
            package,
            PackageStatus.AT_WAREHOUSE,
            at=request.entry_date or now,
            updated_by=caller.identity,
            note=request.note or INTAKE_NOTE,
            location=package.branch
        )

        self.db.flush()
        return package, created

    # ==================== EDICIÓN DEL ALIADO ====================

    async def edit(self, request: PackageEditRequest, caller: CallerIdentity) -> Dict[str, Any]:
        """
        Upsert con el estado que reporta el aliado en `PackageStatus`.
        Solo se agrega historial cuando el estado cambia o el paquete es nuevo.
        """
        package, created = self._save_with_retry(
            "edit",
            request.tracking_id,
            lambda tracking_id: self._apply_edit(tracking_id, request, caller)
        )
        logger.info(
            f"✅ Edición {'creó' if created else 'actualizó'} {package.tracking_id} "
            f"estado={package.status.value} por {caller.identity}"
        )

        response = serialize_package(package, include_history=False)
        response.update({"success": True, "created": created})
        return response

    def _apply_edit(
        self,
        tracking_id: str,
        request: PackageEditRequest,
        caller: CallerIdentity
    ) -> Tuple[Package, bool]:
        now = utcnow()
        package, created = self._lock_owner_and_package(tracking_id, request.external_customer_code, now)
        previous_status = package.status

        if request.external_status_code is not None:
            new_status = StatusTranslator.to_internal(request.external_status_code)
        elif created:
            new_status = PackageStatus.AT_WAREHOUSE
        else:
            new_status = previous_status

        self._apply_partner_fields(package, request)

        if not created and self._is_backward(previous_status, new_status):
            logger.warning(
                f"⚠️ Retroceso de estado en {tracking_id}: "
                f"{previous_status.value} → {new_status.value} (edición de {caller.identity})"
            )

        package.status = new_status
        package.updated_at = now

        if created or new_status != previous_status:
            self.repository.add_history(
                package,
                new_status,
                at=now,
                updated_by=caller.identity,
                note=request.note or EDIT_NOTE,
                location=package.branch
            )

        self.db.flush()
        return package, created

    # ==================== LOTES ====================

    async def _run_batch(
        self,
        label: str,
        items: List[Any],
        request_model: Type[BaseModel],
        operation: Callable[[Any], Awaitable[Tuple[str, int]]]
    ) -> Dict[str, Any]:
        """Cada elemento se valida y guarda aislado: un error no aborta el lote"""
        results = []

        for index, item in enumerate(items):
            raw_tracking = _raw_tracking(item)

            try:
                request = request_model.model_validate(item)
            except ValidationError as e:
                results.append({
                    "index": index,
                    "tracking_id": raw_tracking,
                    "ok": False,
                    "status_code": 400,
                    "error": format_validation_errors(e.errors()),
                })
                continue

            try:
                tracking_id, status_code = await operation(request)
                results.append({
                    "index": index,
                    "tracking_id": tracking_id,
                    "ok": True,
                    "status_code": status_code,
                })
            except HTTPException as e:
                results.append({
                    "index": index,
                    "tracking_id": request.tracking_id,
                    "ok": False,
                    "status_code": e.status_code,
                    "error": e.detail,
                })

        succeeded = len([r for r in results if r["ok"]])
        failed = len(results) - succeeded
        logger.info(f"📦 {label}: {succeeded} ok, {failed} con error")

        return {
            "success": failed == 0,
            "processed": len(results),
            "succeeded": succeeded,
            "failed": failed,
            "results": results,
        }

    async def bulk_intake(self, items: List[Any], caller: CallerIdentity) -> Dict[str, Any]:
        async def run(request: PackageIntakeRequest) -> Tuple[str, int]:
            outcome = await self.intake(request, caller)
            return outcome["tracking_id"], 201 if outcome["created"] else 200

        return await self._run_batch(f"Bulk intake de {caller.identity}", items, PackageIntakeRequest, run)

    async def bulk_edit(self, items: List[Any], caller: CallerIdentity) -> Dict[str, Any]:
        async def run(request: PackageEditRequest) -> Tuple[str, int]:
            outcome = await self.edit(request, caller)
            return outcome["tracking_id"], 201 if outcome["created"] else 200

        return await self._run_batch(f"Edición de {caller.identity}", items, PackageEditRequest, run)

    async def bulk_delete(self, payload: Union[List[Any], Dict[str, Any]], caller: CallerIdentity) -> Dict[str, Any]:
        """Acepta un objeto o una lista de objetos con `TrackingNumber`"""
        items = payload if isinstance(payload, list) else [payload]
        if not any(_raw_tracking(item) for item in items):
            raise ValidationFailedError(
                "Se requiere al menos un TrackingNumber",
                [{"field": "TrackingNumber", "message": "Ningún elemento trae tracking"}]
            )

        async def run(request: PackageDeleteRequest) -> Tuple[str, int]:
            outcome = await self.soft_delete(request, caller)
            return outcome["tracking_id"], 200

        return await self._run_batch(f"Borrado masivo de {caller.identity}", items, PackageDeleteRequest, run)

    # ==================== CAMBIO DE ESTADO ====================

    async def update_status(self, request: PackageStatusUpdateRequest, caller: CallerIdentity) -> Dict[str, Any]:
        """
        Sin tabla de transiciones: el último estado reportado es el vigente.
        Los retrocesos se aceptan (correcciones del aliado) y quedan en el historial.
        """
        now = utcnow()
        try:
            package = self.repository.get_by_tracking_id(request.tracking_id, for_update=True)
            if not package:
                raise NotFoundError(f"Paquete {request.tracking_id} no encontrado")

            previous_status = package.status
            external_code = None
            external_label = None

            if request.external_status_code is not None:
                new_status = StatusTranslator.to_internal(request.external_status_code)
                external_code = StatusTranslator.normalize_code(request.external_status_code)
                external_label = StatusTranslator.to_display_label(request.external_status_code)
                package.external_status_code = external_code
                package.external_status_label = external_label
            else:
                new_status = request.status

            if self._is_backward(previous_status, new_status):
                logger.warning(
                    f"⚠️ Retroceso de estado en {package.tracking_id}: "
                    f"{previous_status.value} → {new_status.value} (reportado por {caller.identity})"
                )

            if request.merge_data:
                package.integration_payload = merge_payload(package.integration_payload, request.merge_data)

            if request.location:
                package.branch = request.location

            for name, value in request.descriptive_values().items():
                setattr(package, name, value)

            package.status = new_status
            package.updated_at = now

            self.repository.add_history(
                package,
                new_status,
                at=now,
                updated_by=caller.identity,
                note=request.note,
                location=request.location
            )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"❌ Error de base de datos en update_status tracking={request.tracking_id}: {e}")
            raise InternalServerError("Error actualizando el estado del paquete")

        self.db.refresh(package)
        logger.info(f"✅ Estado de {package.tracking_id}: {previous_status.value} → {new_status.value}")

        return {
            "success": True,
            "tracking_id": package.tracking_id,
            "external_status_code": external_code,
            "external_status_label": external_label,
            "status": new_status.value,
            "status_label": StatusTranslator.internal_label(new_status),
            "previous_status": previous_status.value,
            "location": request.location or package.branch,
            "note": request.note,
            "updated_by": caller.identity,
            "timestamp": isoformat_utc(now),
            "history_length": len(package.history),
        }

    @staticmethod
    def _is_backward(previous: PackageStatus, new: PackageStatus) -> bool:
        if previous not in STATUS_PROGRESSION or new not in STATUS_PROGRESSION:
            return False
        return STATUS_PROGRESSION[new] < STATUS_PROGRESSION[previous]

    # ==================== BORRADO LÓGICO ====================

    async def soft_delete(self, request: PackageDeleteRequest, caller: CallerIdentity) -> Dict[str, Any]:
        """Marca Deleted y agrega historial; el registro nunca se elimina"""
        now = utcnow()
        try:
            package = self.repository.get_by_tracking_id(request.tracking_id, for_update=True)
            if not package:
                raise NotFoundError(f"Paquete {request.tracking_id} no encontrado")

            package.status = PackageStatus.DELETED
            package.updated_at = now
            self.repository.add_history(
                package,
                PackageStatus.DELETED,
                at=now,
                updated_by=caller.identity,
                note=request.note or DELETE_NOTE
            )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"❌ Error de base de datos en soft_delete tracking={request.tracking_id}: {e}")
            raise InternalServerError("Error eliminando el paquete")

        self.db.refresh(package)
        logger.info(f"🗑️ Paquete {package.tracking_id} marcado como Deleted por {caller.identity}")

        response = serialize_package(package)
        response["success"] = True
        return response

    # ==================== CONSULTAS ====================

    async def get_package(self, tracking_id: str) -> Dict[str, Any]:
        package = self.repository.get_by_tracking_id(tracking_id)
        if not package:
            raise NotFoundError(f"Paquete {tracking_id} no encontrado")
        return serialize_package(package)

    async def package_exists(self, tracking_id: str) -> Dict[str, Any]:
        tracking_id = tracking_id.strip()
        if not tracking_id:
            raise ValidationFailedError(
                "tracking es requerido", [{"field": "tracking", "message": "Valor vacío"}]
            )
        return {"tracking_id": tracking_id, "exists": self.repository.exists(tracking_id)}

    async def pull_customers(self, limit: int = 1000) -> List[Dict[str, str]]:
        """Directorio de clientes en el formato que esperan los sistemas de bodega"""
        customers = self.repository.list_customers(limit)
        return [
            {
                "UserCode": customer.user_code or "",
                "FirstName": customer.first_name or "",
                "LastName": customer.last_name or "",
                "Branch": customer.branch or "",
            }
            for customer in customers
        ]
