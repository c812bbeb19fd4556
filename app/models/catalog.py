from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CatalogSubMaterial:
    """Read-only catalog entry. The client application owns the content;
    this service only reads ordering and publication state."""

    id: str
    module_id: int
    order_index: int
    published: bool = True
    title: str = ""
