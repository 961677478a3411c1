# app/modules/manifests/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import update
from typing import List, Optional, Sequence
import logging

from app.shared.database.models import Manifest, Package

logger = logging.getLogger(__name__)

class ManifestRepository:
    """Acceso a datos de manifiestos. No hace commit."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_manifest_id(self, manifest_id: str, for_update: bool = False) -> Optional[Manifest]:
        query = self.db.query(Manifest).filter(Manifest.manifest_id == manifest_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_manifest(self, manifest_id: str) -> Manifest:
        manifest = Manifest(manifest_id=manifest_id, package_awbs=[], collection_codes=[])
        self.db.add(manifest)
        return manifest

    def tracking_ids_present(self, tracking_ids: Sequence[str]) -> List[str]:
        if not tracking_ids:
            return []
        rows = self.db.query(Package.tracking_id).filter(Package.tracking_id.in_(tracking_ids)).all()
        return [row[0] for row in rows]

    def control_numbers_present(self, control_numbers: Sequence[str]) -> List[str]:
        if not control_numbers:
            return []
        rows = self.db.query(Package.control_number).filter(
            Package.control_number.in_(control_numbers)
        ).distinct().all()
        return [row[0] for row in rows]

    def link_by_tracking(self, manifest_id: str, tracking_ids: Sequence[str]) -> int:
        if not tracking_ids:
            return 0
        result = self.db.execute(
            update(Package)
            .where(Package.tracking_id.in_(tracking_ids))
            .values(manifest_id=manifest_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def link_by_control(self, manifest_id: str, control_numbers: Sequence[str]) -> int:
        if not control_numbers:
            return 0
        result = self.db.execute(
            update(Package)
            .where(Package.control_number.in_(control_numbers))
            .values(manifest_id=manifest_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def linked_tracking_ids(self, manifest_id: str) -> List[str]:
        rows = self.db.query(Package.tracking_id).filter(
            Package.manifest_id == manifest_id
        ).order_by(Package.id).all()
        return [row[0] for row in rows]
