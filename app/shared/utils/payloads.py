# app/shared/utils/payloads.py
from copy import deepcopy
import math
from typing import Any, Dict, Optional


def merge_payload(base: Optional[Dict[str, Any]], patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge por llaves del payload de integración.

    Las llaves nuevas se agregan, las existentes se sobrescriben y los
    diccionarios anidados se combinan recursivamente. Nunca reemplaza el
    payload completo. Devuelve un dict nuevo para que el ORM detecte el cambio.
    """
    merged = deepcopy(base) if base else {}
    for key, value in (patch or {}).items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_payload(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def has_non_finite(value: Any) -> bool:
    """True si en cualquier nivel hay un float infinito o NaN (no se puede emitir como JSON)"""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(has_non_finite(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(has_non_finite(item) for item in value)
    return False
