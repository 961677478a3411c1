# app/modules/integrations/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional
from datetime import datetime
import logging

from app.shared.database.models import Package, PackageHistory, PackageStatus, User

logger = logging.getLogger(__name__)

class PackageRepository:
    """Acceso a datos de paquetes y su historial. No hace commit: la transacción es del servicio."""

    def __init__(self, db: Session):
        self.db = db

    def get_customer_for_update(self, user_code: str) -> Optional[User]:
        """Cliente activo por código externo, bloqueado hasta el fin de la transacción"""
        return self.db.query(User).filter(
            User.user_code == user_code,
            User.role == "customer",
            User.is_active.is_(True)
        ).with_for_update().first()

    def get_by_tracking_id(self, tracking_id: str, for_update: bool = False) -> Optional[Package]:
        query = self.db.query(Package).filter(Package.tracking_id == tracking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_package(
        self,
        tracking_id: str,
        customer: User,
        created_at: datetime
    ) -> Package:
        package = Package(
            tracking_id=tracking_id,
            customer_id=customer.id,
            external_customer_code=customer.user_code,
            status=PackageStatus.AT_WAREHOUSE,
            integration_payload={},
            created_at=created_at,
            updated_at=created_at
        )
        self.db.add(package)
        return package

    def add_history(
        self,
        package: Package,
        status: PackageStatus,
        at: datetime,
        updated_by: str,
        note: Optional[str] = None,
        location: Optional[str] = None
    ) -> PackageHistory:
        entry = PackageHistory(
            package=package,
            status=status.value,
            at=at,
            note=note,
            location=location,
            updated_by=updated_by
        )
        self.db.add(entry)
        return entry

    def exists(self, tracking_id: str) -> bool:
        return self.db.query(Package.id).filter(Package.tracking_id == tracking_id).first() is not None

    def list_customers(self, limit: int = 1000) -> List[User]:
        return self.db.query(User).filter(
            User.role == "customer",
            User.is_active.is_(True)
        ).order_by(desc(User.created_at), desc(User.id)).limit(limit).all()
