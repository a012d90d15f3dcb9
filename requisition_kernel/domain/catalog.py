"""
Catalog lookups (``requisition_kernel.domain.catalog``).

Materials, units, stores and sites live in an external catalog and are
referenced by UUID only.  The kernel needs a material's display name for
error messages, nothing more.
"""

from __future__ import annotations

from typing import Mapping, Protocol
from uuid import UUID


class MaterialCatalog(Protocol):
    def material_name(self, material_id: UUID) -> str | None:
        """Display name, or None when unknown."""
        ...


class NullMaterialCatalog:
    """Knows no names; error messages fall back to the UUID text."""

    def material_name(self, material_id: UUID) -> str | None:
        return None


class StaticMaterialCatalog:
    """Catalog backed by an in-memory mapping."""

    def __init__(self, names: Mapping[UUID, str]):
        self._names = dict(names)

    def material_name(self, material_id: UUID) -> str | None:
        return self._names.get(material_id)


def display_name(catalog: MaterialCatalog | None, material_id: UUID) -> str:
    name = catalog.material_name(material_id) if catalog is not None else None
    return name or str(material_id)
