# app/modules/manifests/router.py
from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.credentials import CallerIdentity, read_extractors
from app.core.auth.dependencies import require_partner_access
from app.modules.integrations.router import read_limit, write_limit
from .service import ManifestLinkerService
from .schemas import ManifestDetailResponse, ManifestUpdateRequest, ManifestUpdateResponse

router = APIRouter()

@router.post("/update", response_model=ManifestUpdateResponse)
async def update_manifest(
    update: ManifestUpdateRequest,
    caller: CallerIdentity = Depends(require_partner_access(["manifests:write"], write_limit)),
    db: Session = Depends(get_db)
):
    """
    Upsert de manifiesto y vinculación de paquetes

    **Body:**
    ```json
        {
            "Manifest": {"ManifestID": "M-1", "ManifestStatus": 2},
            "PackageAWBs": ["TAS..."],
            "CollectionCodes": ["CC-1"]
        }
    ```
    """
    service = ManifestLinkerService(db)
    return await service.upsert_and_link(update, caller)


@router.get("/{manifest_id}", response_model=ManifestDetailResponse)
async def get_manifest(
    manifest_id: str = Path(..., description="ID externo del manifiesto"),
    caller: CallerIdentity = Depends(
        require_partner_access(["packages:read"], read_limit, extractors=read_extractors)
    ),
    db: Session = Depends(get_db)
):
    """Manifiesto con los tracking numbers vinculados actualmente"""
    service = ManifestLinkerService(db)
    return await service.get_manifest(manifest_id)
