"""Material signatures: extraction from notes, audit snapshots and similarity."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from frameshop.domain.orders import Order
from frameshop.ordering.catalog import DEFAULT_PATTERNS, MaterialPattern
from frameshop.utils.serialization import json_default

UNKNOWN_VENDOR = "Unknown"


@dataclass(frozen=True)
class MaterialRef:
    vendor: str
    item: str

    @property
    def key(self) -> str:
        return f"{self.vendor}:{self.item}"

    def to_dict(self) -> dict[str, str]:
        return {"vendor": self.vendor, "item": self.item}


def extract_materials(
    notes: str | None,
    patterns: Sequence[MaterialPattern] = DEFAULT_PATTERNS,
) -> list[MaterialRef]:
    """Return one vendor/item pair per catalog pattern found in ``notes``."""
    if not notes:
        return []
    materials: list[MaterialRef] = []
    for pattern in patterns:
        item = pattern.extract(notes)
        if item is not None:
            materials.append(MaterialRef(vendor=pattern.vendor, item=item))
    return materials


def material_similarity(first: Iterable[MaterialRef], second: Iterable[MaterialRef]) -> float:
    """Jaccard similarity over ``vendor:item`` keys; 0.0 if either side is empty."""
    left = {m.key for m in first}
    right = {m.key for m in second}
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def parse_order_details(raw: str | None) -> dict[str, object]:
    """Decode an audit snapshot.  Malformed JSON raises ``ValueError``."""
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        return {}
    return data


def materials_from_details(details: Mapping[str, object]) -> list[MaterialRef]:
    raw = details.get("materials")
    if not isinstance(raw, list):
        return []
    materials: list[MaterialRef] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        vendor = entry.get("vendor")
        item = entry.get("item")
        if isinstance(vendor, str) and isinstance(item, str) and vendor and item:
            materials.append(MaterialRef(vendor=vendor, item=item))
    return materials


def vendors_from_details(details: Mapping[str, object]) -> list[str]:
    """Distinct vendors named by one audit snapshot, ``Unknown`` when none."""
    vendors: dict[str, None] = {}
    listed = details.get("vendors")
    if isinstance(listed, list):
        for vendor in listed:
            if isinstance(vendor, str) and vendor:
                vendors[vendor] = None
    single = details.get("vendor")
    if isinstance(single, str) and single:
        vendors[single] = None
    for material in materials_from_details(details):
        vendors[material.vendor] = None
    return list(vendors) or [UNKNOWN_VENDOR]


def build_order_details(
    order: Order,
    *,
    ordered_by: str,
    was_overridden: bool,
    ordered_at: datetime,
    patterns: Sequence[MaterialPattern] = DEFAULT_PATTERNS,
) -> str:
    materials = extract_materials(order.notes, patterns)
    snapshot = {
        "timestamp": ordered_at,
        "ordered_by": ordered_by,
        "was_overridden": was_overridden,
        "tracking_id": order.tracking_id,
        "materials": [m.to_dict() for m in materials],
        "vendors": list(dict.fromkeys(m.vendor for m in materials)),
    }
    return json.dumps(snapshot, default=json_default, sort_keys=True)
