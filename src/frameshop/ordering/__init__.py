from frameshop.ordering.authorization import OverrideAuthorizationGate
from frameshop.ordering.catalog import (
    DEFAULT_PATTERNS,
    MaterialCatalogConfig,
    MaterialPattern,
    compile_catalog,
    load_material_catalog,
)
from frameshop.ordering.detector import DuplicateOrderDetector
from frameshop.ordering.materials import (
    MaterialRef,
    build_order_details,
    extract_materials,
    material_similarity,
)
from frameshop.ordering.service import MaterialOrderingService

__all__ = [
    "DEFAULT_PATTERNS",
    "DuplicateOrderDetector",
    "MaterialCatalogConfig",
    "MaterialOrderingService",
    "MaterialPattern",
    "MaterialRef",
    "OverrideAuthorizationGate",
    "build_order_details",
    "compile_catalog",
    "extract_materials",
    "load_material_catalog",
    "material_similarity",
]
