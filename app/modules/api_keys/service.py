# app/modules/api_keys/service.py
from datetime import timedelta
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.auth.service import AuthService
from app.core.errors import InternalServerError, NotFoundError
from app.shared.database.models import ApiKey, User
from app.shared.utils.dates import utcnow
from .schemas import ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse

logger = logging.getLogger(__name__)

class ApiKeyService:
    """Gestión de llaves de API para bodegas aliadas"""

    def __init__(self, db: Session):
        self.db = db

    def issue_key(
        self,
        name: str,
        permissions: Sequence[str],
        expires_in_days: Optional[int] = None,
        live: bool = True,
        created_by: Optional[User] = None
    ) -> ApiKeyCreatedResponse:
        key, key_hash, key_prefix = AuthService.generate_api_key(live=live)
        expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days else None

        record = ApiKey(
            key_hash=key_hash,
            key_prefix=key_prefix,
            name=name,
            permissions=list(permissions),
            active=True,
            expires_at=expires_at,
            usage_count=0,
            created_by_user_id=created_by.id if created_by else None
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"❌ Error emitiendo llave '{name}': {e}")
            raise InternalServerError("Error emitiendo la llave")

        logger.info(f"🔑 Llave {key_prefix} emitida para '{name}' con permisos {list(permissions)}")

        data = ApiKeyResponse.model_validate(record).model_dump()
        return ApiKeyCreatedResponse(key=key, **data)

    async def create_key(self, data: ApiKeyCreate, admin: User) -> ApiKeyCreatedResponse:
        return self.issue_key(data.name, data.permissions, data.expires_in_days, data.live, created_by=admin)

    async def list_keys(self) -> List[ApiKeyResponse]:
        records = self.db.query(ApiKey).order_by(ApiKey.id).all()
        return [ApiKeyResponse.model_validate(record) for record in records]

    async def deactivate_key(self, key_id: int, admin: User) -> ApiKeyResponse:
        record = self.db.query(ApiKey).filter(ApiKey.id == key_id).first()
        if not record:
            raise NotFoundError(f"Llave {key_id} no encontrada")

        record.active = False
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"🔒 Llave {record.key_prefix} desactivada por {admin.email}")
        return ApiKeyResponse.model_validate(record)
