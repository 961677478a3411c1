# app/modules/integrations/schemas.py
from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
)
from typing import Any, ClassVar, Dict, List, Optional, Tuple
from datetime import datetime

from app.shared.database.models import PackageStatus
from app.shared.utils.dates import parse_partner_datetime
from app.shared.utils.payloads import has_non_finite

# Rangos de las columnas Numeric / Integer
MAX_MEASURE = 99_999_999.99        # Numeric(10, 2)
MAX_CUBES = 9_999_999.999          # Numeric(10, 3)
MAX_INTEGER = 2_147_483_647


def partner_field(*names: str, default: Any = None, **kwargs) -> Any:
    """Campo que acepta snake_case, camelCase y el PascalCase de los aliados"""
    return Field(default, validation_alias=AliasChoices(*names), **kwargs)


class PartnerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, allow_inf_nan=False)


# Campos descriptivos que se copian tal cual al paquete cuando vienen informados
DESCRIPTIVE_FIELDS = (
    "branch", "weight", "shipper", "description", "length", "width", "height",
    "pieces", "cubes", "control_number", "service_type_id", "first_name",
    "last_name", "entry_staff", "entry_date", "hs_code",
)

EDIT_FIELDS = DESCRIPTIVE_FIELDS + (
    "manifest_id", "external_package_id", "courier_id", "collection_id",
    "discrepancy", "discrepancy_description",
)


class PackageIntakeRequest(PartnerModel):
    """Ingreso de paquete reportado por la bodega"""
    model_config = ConfigDict(
        populate_by_name=True, str_strip_whitespace=True, allow_inf_nan=False, extra="allow"
    )

    copied_fields: ClassVar[Tuple[str, ...]] = DESCRIPTIVE_FIELDS

    tracking_id: Optional[str] = partner_field(
        "tracking_id", "trackingId", "trackingNumber", "TrackingNumber", max_length=100
    )
    external_customer_code: str = partner_field(
        "external_customer_code", "externalCustomerCode", "userCode", "UserCode",
        default=..., min_length=1, max_length=50, description="Código externo del cliente dueño"
    )

    branch: Optional[str] = partner_field("branch", "Branch", "warehouse", max_length=100)
    weight: Optional[float] = partner_field("weight", "Weight", ge=0, le=MAX_MEASURE)
    shipper: Optional[str] = partner_field("shipper", "Shipper", max_length=255)
    description: Optional[str] = partner_field("description", "Description")
    length: Optional[float] = partner_field("length", "Length", ge=0, le=MAX_MEASURE)
    width: Optional[float] = partner_field("width", "Width", ge=0, le=MAX_MEASURE)
    height: Optional[float] = partner_field("height", "Height", ge=0, le=MAX_MEASURE)
    pieces: Optional[int] = partner_field("pieces", "Pieces", ge=0, le=MAX_INTEGER)
    cubes: Optional[float] = partner_field("cubes", "Cubes", ge=0, le=MAX_CUBES)
    control_number: Optional[str] = partner_field(
        "control_number", "controlNumber", "ControlNumber", max_length=100
    )
    service_type_id: Optional[str] = partner_field(
        "service_type_id", "serviceTypeId", "ServiceTypeID", max_length=100
    )
    first_name: Optional[str] = partner_field("first_name", "firstName", "FirstName", max_length=255)
    last_name: Optional[str] = partner_field("last_name", "lastName", "LastName", max_length=255)
    entry_staff: Optional[str] = partner_field(
        "entry_staff", "entryStaff", "EntryStaff", "receivedBy", max_length=255
    )
    entry_date: Optional[datetime] = partner_field(
        "entry_date", "entryDate", "EntryDateTime", "EntryDate"
    )
    hs_code: Optional[str] = partner_field("hs_code", "hsCode", "HSCode", max_length=50)
    external_status_code: Optional[Any] = partner_field(
        "external_status_code", "externalStatusCode", "PackageStatus"
    )
    note: Optional[str] = partner_field("note", "notes", "Note")
    api_token: Optional[str] = partner_field("api_token", "APIToken", exclude=True)

    @field_validator("tracking_id", "control_number", "service_type_id", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("entry_date", mode="before")
    @classmethod
    def parse_entry_date(cls, value):
        if value is None or isinstance(value, datetime):
            return value
        parsed = parse_partner_datetime(value)
        if parsed is None:
            raise ValueError("Fecha de ingreso inválida")
        return parsed

    @model_validator(mode="after")
    def finite_extras(self):
        if has_non_finite(self.model_extra):
            raise ValueError("Los campos adicionales no admiten Infinity ni NaN")
        return self

    def extra_payload(self) -> Dict[str, Any]:
        """Campos del aliado sin columna propia; van al payload de integración"""
        return dict(self.model_extra or {})

    def descriptive_values(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.copied_fields
            if getattr(self, name) is not None
        }


class PackageEditRequest(PackageIntakeRequest):
    """
    Edición / upsert del aliado: el estado sale de `PackageStatus` y además
    trae identificadores del sistema de bodega y discrepancias.
    """
    copied_fields: ClassVar[Tuple[str, ...]] = EDIT_FIELDS

    tracking_id: str = partner_field(
        "tracking_id", "trackingId", "trackingNumber", "TrackingNumber",
        default=..., min_length=1, max_length=100
    )
    manifest_id: Optional[str] = partner_field("manifest_id", "manifestId", "ManifestID", max_length=100)
    external_package_id: Optional[str] = partner_field(
        "external_package_id", "externalPackageId", "PackageID", max_length=100
    )
    courier_id: Optional[str] = partner_field("courier_id", "courierId", "CourierID", max_length=100)
    collection_id: Optional[str] = partner_field(
        "collection_id", "collectionId", "CollectionID", max_length=100
    )
    discrepancy: Optional[bool] = partner_field("discrepancy", "Discrepancy")
    discrepancy_description: Optional[str] = partner_field(
        "discrepancy_description", "discrepancyDescription", "DiscrepancyDescription"
    )


class PackageStatusUpdateRequest(PartnerModel):
    """Cambio de estado; se acepta código externo o estado interno"""
    tracking_id: str = partner_field(
        "tracking_id", "trackingId", "trackingNumber", "TrackingNumber",
        default=..., min_length=1, max_length=100
    )
    external_status_code: Optional[Any] = partner_field(
        "external_status_code", "externalStatusCode", "PackageStatus"
    )
    status: Optional[PackageStatus] = partner_field("status", "internalStatus")
    note: Optional[str] = partner_field("note", "notes", "Note")
    location: Optional[str] = partner_field("location", "Location", "branch", max_length=100)
    weight: Optional[float] = partner_field("weight", "Weight", ge=0, le=MAX_MEASURE)
    shipper: Optional[str] = partner_field("shipper", "Shipper", max_length=255)
    description: Optional[str] = partner_field("description", "Description")
    manifest_id: Optional[str] = partner_field("manifest_id", "manifestId", "ManifestID", max_length=100)
    merge_data: Optional[Dict[str, Any]] = partner_field("merge_data", "mergeData", "data")
    api_token: Optional[str] = partner_field("api_token", "APIToken", exclude=True)

    @model_validator(mode="after")
    def status_source_required(self):
        if self.external_status_code is None and self.status is None:
            raise ValueError("Se requiere external_status_code o status")
        if has_non_finite(self.merge_data):
            raise ValueError("merge_data no admite Infinity ni NaN")
        return self

    def descriptive_values(self) -> Dict[str, Any]:
        values = {
            "weight": self.weight,
            "shipper": self.shipper,
            "description": self.description,
            "manifest_id": self.manifest_id,
        }
        return {name: value for name, value in values.items() if value is not None}


class PackageDeleteRequest(PartnerModel):
    tracking_id: str = partner_field(
        "tracking_id", "trackingId", "trackingNumber", "TrackingNumber",
        default=..., min_length=1, max_length=100
    )
    note: Optional[str] = partner_field("note", "notes", "Note")
    api_token: Optional[str] = partner_field("api_token", "APIToken", exclude=True)


# ==================== RESPUESTAS ====================

class BulkItemResult(BaseModel):
    index: int
    tracking_id: Optional[str] = None
    ok: bool
    status_code: Optional[int] = None
    error: Optional[Any] = None


class BulkOperationResponse(BaseModel):
    success: bool
    processed: int
    succeeded: int
    failed: int
    results: List[BulkItemResult]


class PackageExistsResponse(BaseModel):
    tracking_id: str
    exists: bool


class TrackingValidationResponse(BaseModel):
    tracking_id: str
    valid: bool
