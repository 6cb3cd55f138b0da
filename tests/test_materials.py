from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from frameshop.domain.orders import Order, OrderType
from frameshop.ordering.materials import (
    MaterialRef,
    build_order_details,
    extract_materials,
    material_similarity,
    materials_from_details,
    parse_order_details,
    vendors_from_details,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_extract_materials_finds_each_vendor() -> None:
    notes = "Frame: R123, Mat: C456, Museum Glass upgrade"
    assert extract_materials(notes) == [
        MaterialRef("Roma Moulding", "R123"),
        MaterialRef("Crescent", "C456"),
        MaterialRef("Guardian Glass", "Museum Glass"),
    ]


def test_extract_materials_larson_juhl_frame() -> None:
    assert extract_materials("Frame: L2210 gilded") == [MaterialRef("Larson Juhl", "L2210")]


def test_extract_materials_takes_first_match_per_pattern() -> None:
    notes = "Frame: R100 then Frame: R200"
    assert extract_materials(notes) == [MaterialRef("Roma Moulding", "R100")]


@pytest.mark.parametrize("notes", [None, "", "customer will call back"])
def test_extract_materials_without_signature(notes) -> None:
    assert extract_materials(notes) == []


def test_similarity_identical_sets() -> None:
    a = [MaterialRef("Roma Moulding", "R123")]
    assert material_similarity(a, list(a)) == 1.0


def test_similarity_partial_overlap() -> None:
    a = [MaterialRef("Roma Moulding", "R123"), MaterialRef("Crescent", "C1")]
    b = [MaterialRef("Roma Moulding", "R123")]
    assert material_similarity(a, b) == pytest.approx(0.5)


def test_similarity_disjoint_vendors_is_zero() -> None:
    a = [MaterialRef("Roma Moulding", "R123")]
    b = [MaterialRef("Crescent", "C1")]
    assert material_similarity(a, b) == 0.0


def test_similarity_empty_side_is_zero() -> None:
    assert material_similarity([], [MaterialRef("Crescent", "C1")]) == 0.0
    assert material_similarity([MaterialRef("Crescent", "C1")], []) == 0.0


def test_parse_order_details_rejects_malformed_json() -> None:
    with pytest.raises(ValueError):
        parse_order_details("{not json")


def test_parse_order_details_non_object_is_empty() -> None:
    assert parse_order_details("[1, 2]") == {}
    assert parse_order_details("") == {}


def test_vendors_from_details_defaults_to_unknown() -> None:
    assert vendors_from_details({}) == ["Unknown"]


def test_vendors_from_details_merges_sources() -> None:
    details = {
        "vendor": "Larson Juhl",
        "materials": [{"vendor": "Roma Moulding", "item": "R1"}, {"bad": True}],
    }
    assert vendors_from_details(details) == ["Larson Juhl", "Roma Moulding"]
    assert materials_from_details(details) == [MaterialRef("Roma Moulding", "R1")]


def test_build_order_details_snapshot() -> None:
    order = Order(
        id="o-1",
        tracking_id="TRK-1",
        customer_id="c-1",
        description="Print",
        order_type=OrderType.FRAME,
        price=10.0,
        due_date="2024-03-10",
        created_at=NOW,
        updated_at=NOW,
        notes="Frame: R123 and Frame: L9",
    )

    raw = build_order_details(order, ordered_by="staff-7", was_overridden=True, ordered_at=NOW)
    snapshot = json.loads(raw)

    assert snapshot["ordered_by"] == "staff-7"
    assert snapshot["was_overridden"] is True
    assert snapshot["tracking_id"] == "TRK-1"
    assert snapshot["timestamp"] == NOW.isoformat()
    assert snapshot["vendors"] == ["Roma Moulding", "Larson Juhl"]
    assert materials_from_details(snapshot) == [
        MaterialRef("Roma Moulding", "R123"),
        MaterialRef("Larson Juhl", "L9"),
    ]
