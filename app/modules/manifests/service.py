# app/modules/manifests/service.py
from typing import Any, Dict, Tuple
from fastapi import HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from app.core.auth.credentials import CallerIdentity
from app.core.errors import ConflictError, InternalServerError, NotFoundError
from app.shared.database.models import Manifest
from app.shared.services.status_mapping import StatusTranslator
from app.shared.utils.dates import isoformat_utc, utcnow
from .repository import ManifestRepository
from .schemas import ManifestUpdateRequest

logger = logging.getLogger(__name__)

# Campos del descriptor que se sobrescriben tal cual en cada ingesta
MANIFEST_FIELDS = (
    "description", "courier_id", "service_type_id", "manifest_code", "flight_date",
    "weight", "item_count", "manifest_number", "staff_name", "entry_date", "awb_number",
)


class ManifestLinkerService:
    """
    Upsert de manifiestos y vinculación de paquetes.

    La vinculación solo agrega: una nueva ingesta con listas más cortas
    no desvincula los paquetes enlazados antes.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = ManifestRepository(db)

    async def upsert_and_link(self, request: ManifestUpdateRequest, caller: CallerIdentity) -> Dict[str, Any]:
        manifest_id = request.manifest.manifest_id

        for attempt in (1, 2):
            try:
                created = self._upsert(request)
                linked_by_tracking, linked_by_control = self._link(manifest_id, request)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                if attempt == 2:
                    logger.error(f"❌ Conflicto persistente en manifiesto {manifest_id}: {e}")
                    raise ConflictError(f"No se pudo registrar el manifiesto {manifest_id}")
                logger.warning(f"⚠️ Conflicto de unicidad en manifiesto {manifest_id}, reintentando")
            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception(f"❌ Error de base de datos en manifiesto {manifest_id}: {e}")
                raise InternalServerError("Error guardando el manifiesto")

        logger.info(
            f"✅ Manifiesto {manifest_id} {'creado' if created else 'actualizado'} por {caller.identity}: "
            f"{linked_by_tracking} por tracking, {linked_by_control} por control"
        )

        return {
            "success": True,
            "manifest_id": manifest_id,
            "created": created,
            "linked_by_tracking": linked_by_tracking,
            "linked_by_control": linked_by_control,
        }

    def _upsert(self, request: ManifestUpdateRequest) -> bool:
        descriptor = request.manifest
        manifest = self.repository.get_by_manifest_id(descriptor.manifest_id, for_update=True)
        created = manifest is None
        if created:
            manifest = self.repository.create_manifest(descriptor.manifest_id)

        for name in MANIFEST_FIELDS:
            setattr(manifest, name, getattr(descriptor, name))

        manifest.service_type_name = StatusTranslator.service_type_name(descriptor.service_type_id)
        manifest.manifest_status = StatusTranslator.normalize_code(descriptor.manifest_status)
        manifest.manifest_status_label = StatusTranslator.to_display_label(descriptor.manifest_status)
        manifest.package_awbs = list(request.package_awbs)
        manifest.collection_codes = list(request.collection_codes)
        manifest.data = request.model_dump(mode="json", exclude={"api_token"})
        manifest.updated_at = utcnow()

        self.db.flush()
        return created

    def _link(self, manifest_id: str, request: ManifestUpdateRequest) -> Tuple[int, int]:
        matched_tracking = self.repository.tracking_ids_present(request.package_awbs)
        matched_control = self.repository.control_numbers_present(request.collection_codes)

        unmatched_tracking = sorted(set(request.package_awbs) - set(matched_tracking))
        unmatched_control = sorted(set(request.collection_codes) - set(matched_control))
        if unmatched_tracking:
            logger.info(f"Manifiesto {manifest_id}: AWBs sin paquete {unmatched_tracking}")
        if unmatched_control:
            logger.info(f"Manifiesto {manifest_id}: códigos de control sin paquete {unmatched_control}")

        linked_by_tracking = self.repository.link_by_tracking(manifest_id, matched_tracking)
        linked_by_control = self.repository.link_by_control(manifest_id, matched_control)
        return linked_by_tracking, linked_by_control

    async def get_manifest(self, manifest_id: str) -> Dict[str, Any]:
        manifest = self.repository.get_by_manifest_id(manifest_id)
        if not manifest:
            raise NotFoundError(f"Manifiesto {manifest_id} no encontrado")
        return self._serialize(manifest)

    def _serialize(self, manifest: Manifest) -> Dict[str, Any]:
        return {
            "manifest_id": manifest.manifest_id,
            "description": manifest.description,
            "courier_id": manifest.courier_id,
            "service_type_id": manifest.service_type_id,
            "service_type_name": manifest.service_type_name,
            "manifest_status": manifest.manifest_status,
            "manifest_status_label": manifest.manifest_status_label,
            "manifest_code": manifest.manifest_code,
            "flight_date": isoformat_utc(manifest.flight_date),
            "weight": float(manifest.weight) if manifest.weight is not None else None,
            "item_count": manifest.item_count,
            "manifest_number": manifest.manifest_number,
            "staff_name": manifest.staff_name,
            "entry_date": isoformat_utc(manifest.entry_date),
            "awb_number": manifest.awb_number,
            "package_awbs": manifest.package_awbs or [],
            "collection_codes": manifest.collection_codes or [],
            "linked_tracking_ids": self.repository.linked_tracking_ids(manifest.manifest_id),
            "data": manifest.data,
            "created_at": isoformat_utc(manifest.created_at),
            "updated_at": isoformat_utc(manifest.updated_at),
        }
