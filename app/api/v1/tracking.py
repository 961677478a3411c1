from fastapi import APIRouter, Path

from app.shared.services.tracking_service import TrackingNumberService
from app.modules.integrations.schemas import TrackingValidationResponse

router = APIRouter()

@router.get("/{tracking_id}/validate", response_model=TrackingValidationResponse)
async def validate_tracking_number(
    tracking_id: str = Path(..., description="Tracking number a verificar")
):
    """
    Verificar formato y dígito de control de un tracking number
    (útil para códigos digitados a mano). No consulta la base de datos.
    """
    return TrackingValidationResponse(
        tracking_id=tracking_id,
        valid=TrackingNumberService.validate(tracking_id)
    )
