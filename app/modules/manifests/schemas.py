# app/modules/manifests/schemas.py
from pydantic import ConfigDict, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
import math

from app.modules.integrations.schemas import MAX_INTEGER, PartnerModel, partner_field
from app.shared.utils.dates import parse_partner_datetime

# Numeric(12, 2)
MAX_MANIFEST_WEIGHT = 9_999_999_999.99


def _lenient_number(value, cast, maximum):
    """Número del aliado o None si no es legible, finito y dentro de rango de la columna"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or abs(number) > maximum:
        return None
    return cast(number)


class ManifestDescriptor(PartnerModel):
    """Bloque `Manifest` del payload del aliado"""
    model_config = ConfigDict(
        populate_by_name=True, str_strip_whitespace=True, allow_inf_nan=False, extra="allow"
    )

    manifest_id: str = partner_field(
        "manifest_id", "manifestId", "ManifestID", default=..., min_length=1, max_length=100
    )
    description: Optional[str] = partner_field("description", "Description")
    courier_id: Optional[str] = partner_field("courier_id", "courierId", "CourierID", max_length=100)
    service_type_id: Optional[str] = partner_field(
        "service_type_id", "serviceTypeId", "ServiceTypeID", max_length=100
    )
    manifest_status: Optional[Any] = partner_field("manifest_status", "manifestStatus", "ManifestStatus")
    manifest_code: Optional[str] = partner_field("manifest_code", "manifestCode", "ManifestCode", max_length=100)
    flight_date: Optional[datetime] = partner_field("flight_date", "flightDate", "FlightDate")
    weight: Optional[float] = partner_field("weight", "Weight")
    item_count: Optional[int] = partner_field("item_count", "itemCount", "ItemCount")
    manifest_number: Optional[int] = partner_field("manifest_number", "manifestNumber", "ManifestNumber")
    staff_name: Optional[str] = partner_field("staff_name", "staffName", "StaffName", max_length=255)
    entry_date: Optional[datetime] = partner_field("entry_date", "entryDate", "EntryDateTime", "EntryDate")
    awb_number: Optional[str] = partner_field("awb_number", "awbNumber", "AWBNumber", max_length=100)

    @field_validator("flight_date", "entry_date", mode="before")
    @classmethod
    def lenient_date(cls, value):
        # Fechas ilegibles se ignoran
        if value is None or isinstance(value, datetime):
            return value
        return parse_partner_datetime(value)

    @field_validator("weight", mode="before")
    @classmethod
    def lenient_weight(cls, value):
        return _lenient_number(value, float, MAX_MANIFEST_WEIGHT)

    @field_validator("item_count", "manifest_number", mode="before")
    @classmethod
    def lenient_integer(cls, value):
        return _lenient_number(value, int, MAX_INTEGER)


class ManifestUpdateRequest(PartnerModel):
    manifest: ManifestDescriptor = partner_field("manifest", "Manifest", default=...)
    package_awbs: List[str] = partner_field("package_awbs", "packageAwbs", "PackageAWBs", default=[])
    collection_codes: List[str] = partner_field(
        "collection_codes", "collectionCodes", "CollectionCodes", default=[]
    )
    api_token: Optional[str] = partner_field("api_token", "APIToken", exclude=True)

    @field_validator("package_awbs", "collection_codes", mode="before")
    @classmethod
    def clean_keys(cls, value):
        """Solo strings no vacíos, sin duplicados, en el orden recibido"""
        if not isinstance(value, list):
            return []
        seen = []
        for item in value:
            if isinstance(item, str) and item.strip() and item.strip() not in seen:
                seen.append(item.strip())
        return seen


class ManifestUpdateResponse(PartnerModel):
    success: bool = True
    manifest_id: str
    created: bool
    linked_by_tracking: int
    linked_by_control: int


class ManifestDetailResponse(PartnerModel):
    manifest_id: str
    description: Optional[str] = None
    courier_id: Optional[str] = None
    service_type_id: Optional[str] = None
    service_type_name: Optional[str] = None
    manifest_status: Optional[str] = None
    manifest_status_label: Optional[str] = None
    manifest_code: Optional[str] = None
    flight_date: Optional[str] = None
    weight: Optional[float] = None
    item_count: Optional[int] = None
    manifest_number: Optional[int] = None
    staff_name: Optional[str] = None
    entry_date: Optional[str] = None
    awb_number: Optional[str] = None
    package_awbs: List[str] = []
    collection_codes: List[str] = []
    linked_tracking_ids: List[str] = []
    data: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
