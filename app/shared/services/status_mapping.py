# app/shared/services/status_mapping.py
"""
Traducción del vocabulario de estados de los sistemas de bodega aliados
al ciclo de vida interno de paquetes.

Los códigos externos 1 y 2 colapsan en InTransit, y 3 y 4 en AtLocalPort.
El código original se conserva como metadato en el paquete.
"""
import math
from typing import Any, Dict, Optional

from app.shared.database.models import PackageStatus

EXTERNAL_TO_INTERNAL_STATUS: Dict[int, PackageStatus] = {
    0: PackageStatus.AT_WAREHOUSE,
    1: PackageStatus.IN_TRANSIT,      # Delivered to airport
    2: PackageStatus.IN_TRANSIT,      # In transit to local port
    3: PackageStatus.AT_LOCAL_PORT,
    4: PackageStatus.AT_LOCAL_PORT,   # At local sorting
}

EXTERNAL_STATUS_LABELS: Dict[int, str] = {
    0: "AT WAREHOUSE",
    1: "DELIVERED TO AIRPORT",
    2: "IN TRANSIT TO LOCAL PORT",
    3: "AT LOCAL PORT",
    4: "AT LOCAL SORTING",
}

DEFAULT_EXTERNAL_LABEL = EXTERNAL_STATUS_LABELS[0]

SERVICE_TYPE_NAMES: Dict[str, str] = {
    "59cadcd4-7508-450b-85aa-9ec908d168fe": "AIR STANDARD",
    "25a1d8e5-a478-4cc3-b1fd-a37d0d787302": "AIR EXPRESS",
    "8df142ca-0573-4ce9-b11d-7a3e5f8ba196": "AIR PREMIUM",
}

UNSPECIFIED_SERVICE_TYPE = "UNSPECIFIED"

INTERNAL_STATUS_LABELS: Dict[PackageStatus, str] = {
    PackageStatus.UNKNOWN: "Unknown",
    PackageStatus.AT_WAREHOUSE: "At Warehouse",
    PackageStatus.IN_TRANSIT: "In Transit",
    PackageStatus.AT_LOCAL_PORT: "At Local Port",
    PackageStatus.DELIVERED: "Delivered",
    PackageStatus.DELETED: "Deleted",
}


def parse_external_code(value: Any) -> Optional[int]:
    """Normalizar un código externo a entero; None si no es numérico"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            number = float(raw)
        except ValueError:
            return None
        if not math.isfinite(number) or not number.is_integer():
            return None
        return int(number)
    return None


class StatusTranslator:
    """Mapeos deterministas estado externo -> estado interno / etiqueta"""

    @staticmethod
    def to_internal(external_code: Any) -> PackageStatus:
        code = parse_external_code(external_code)
        return EXTERNAL_TO_INTERNAL_STATUS.get(code, PackageStatus.UNKNOWN)

    @staticmethod
    def to_display_label(external_code: Any) -> str:
        code = parse_external_code(external_code)
        return EXTERNAL_STATUS_LABELS.get(code, DEFAULT_EXTERNAL_LABEL)

    @staticmethod
    def service_type_name(service_type_id: Any) -> str:
        if not isinstance(service_type_id, str) or not service_type_id:
            return UNSPECIFIED_SERVICE_TYPE
        return SERVICE_TYPE_NAMES.get(service_type_id, UNSPECIFIED_SERVICE_TYPE)

    @staticmethod
    def internal_label(status: PackageStatus) -> str:
        return INTERNAL_STATUS_LABELS.get(status, INTERNAL_STATUS_LABELS[PackageStatus.UNKNOWN])

    @staticmethod
    def normalize_code(external_code: Any) -> Optional[str]:
        """Representación textual del código externo para guardarlo como metadato"""
        if external_code is None:
            return None
        code = parse_external_code(external_code)
        if code is not None:
            return str(code)
        return str(external_code).strip()[:20] or None
