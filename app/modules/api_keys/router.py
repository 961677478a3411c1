# app/modules/api_keys/router.py
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session
from typing import List

from app.config.database import get_db
from app.core.auth.dependencies import get_admin_user
from .service import ApiKeyService
from .schemas import ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse

router = APIRouter()

@router.post("", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    data: ApiKeyCreate,
    current_user = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Emitir llave para un sistema de bodega

    **Importante:** la llave en claro solo se devuelve en esta respuesta.
    """
    service = ApiKeyService(db)
    return await service.create_key(data, current_user)


@router.get("", response_model=List[ApiKeyResponse])
async def list_api_keys(
    current_user = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Listar llaves emitidas (sin el valor de la llave)"""
    service = ApiKeyService(db)
    return await service.list_keys()


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def deactivate_api_key(
    key_id: int = Path(..., description="ID de la llave"),
    current_user = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Desactivar llave; deja de autenticar de inmediato"""
    service = ApiKeyService(db)
    return await service.deactivate_key(key_id, current_user)
