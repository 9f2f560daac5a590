"""Laundry service catalog used for sequencing basket services.

The catalog is a fixed, ordered vocabulary: ``wash -> spin -> dry -> iron
-> fold``.  It carries no pricing; it only answers "what kind of service is
this?" and "which kind comes next?".

Type resolution precedence:

1. An explicit ``service_type`` tag stored on the service, when it is one
   of the catalog keywords.
2. Otherwise the lower-cased ``service_name`` is scanned for each keyword
   in catalog order and the first keyword it contains wins
   (``"Wash & Dry"`` resolves to ``wash``).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

SERVICE_SEQUENCE: tuple[str, ...] = ("wash", "spin", "dry", "iron", "fold")


def type_from_name(service_name: Optional[str]) -> Optional[str]:
    """Infer the catalog type from free-text ``service_name``."""
    normalized = (service_name or "").strip().lower()
    for service_type in SERVICE_SEQUENCE:
        if service_type in normalized:
            return service_type
    return None


def resolve_service_type(service: Mapping[str, Any]) -> Optional[str]:
    """Return the catalog type of a basket service, or ``None`` if unknown."""
    tag = (service.get("service_type") or "").strip().lower()
    if tag in SERVICE_SEQUENCE:
        return tag
    return type_from_name(service.get("service_name"))


def sequence_index(service_type: str) -> int:
    return SERVICE_SEQUENCE.index(service_type)


def types_after(service_type: str) -> tuple[str, ...]:
    """Catalog types strictly after *service_type*, in sequence order."""
    return SERVICE_SEQUENCE[sequence_index(service_type) + 1 :]
