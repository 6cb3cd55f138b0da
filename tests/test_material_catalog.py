from __future__ import annotations

import pytest
from pydantic import ValidationError

from frameshop.ordering.catalog import (
    MaterialCatalogConfig,
    compile_catalog,
    load_material_catalog,
    validate_pattern_safety,
)
from frameshop.ordering.materials import MaterialRef, extract_materials


def test_load_catalog_from_yaml(tmp_path) -> None:
    path = tmp_path / "materials.yaml"
    path.write_text(
        "version: 1\n"
        "patterns:\n"
        "  - vendor: Nielsen\n"
        "    pattern: 'Metal: (N\\d+)'\n"
        "  - vendor: Tru Vue\n"
        "    pattern: Conservation Clear\n"
        "    item: Conservation Clear\n"
    )

    patterns = compile_catalog(load_material_catalog(str(path)))

    assert extract_materials("Metal: N117, Conservation Clear", patterns) == [
        MaterialRef("Nielsen", "N117"),
        MaterialRef("Tru Vue", "Conservation Clear"),
    ]


def test_missing_catalog_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_material_catalog(str(tmp_path / "absent.yaml"))


def test_empty_catalog_file_has_no_patterns(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_material_catalog(str(path)).patterns == []


def test_catalog_requires_vendor() -> None:
    with pytest.raises(ValidationError):
        MaterialCatalogConfig.model_validate({"patterns": [{"vendor": "", "pattern": "x"}]})


@pytest.mark.parametrize(
    "pattern",
    [
        r"(a+)+",
        r"(?<=Frame: )R\d+",
        r"(R)\1",
        "R" * 300,
    ],
)
def test_unsafe_patterns_rejected(pattern: str) -> None:
    with pytest.raises(ValueError, match="Unsafe regex"):
        validate_pattern_safety(pattern, "material:test")


def test_invalid_regex_rejected() -> None:
    config = MaterialCatalogConfig.model_validate(
        {"patterns": [{"vendor": "Broken", "pattern": "Frame: (R"}]}
    )
    with pytest.raises(ValueError, match="Invalid regex"):
        compile_catalog(config)


def test_multiple_capture_groups_rejected() -> None:
    config = MaterialCatalogConfig.model_validate(
        {"patterns": [{"vendor": "Two", "pattern": r"(R)(\d+)"}]}
    )
    with pytest.raises(ValueError, match="at most one group"):
        compile_catalog(config)
