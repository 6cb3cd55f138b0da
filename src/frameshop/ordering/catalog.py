"""Vendor pattern catalog used to read material signatures out of order notes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

_MAX_PATTERN_LENGTH = 256
_BACKREFERENCE_PATTERN = re.compile(r"\\[1-9]")
_NESTED_QUANTIFIER_PATTERN = re.compile(
    r"\((?:[^()\\]|\\.)*[+*](?:[^()\\]|\\.)*\)\s*(?:[+*]|\{\d+(?:,\d*)?\})"
)
_LOOKBEHIND_TOKENS = ("(?<=", "(?<!")


class MaterialPatternConfig(BaseModel):
    vendor: str = Field(min_length=1)
    pattern: str = Field(min_length=1)
    item: str | None = Field(
        default=None,
        description="Fixed item name; when unset the first capture group (or the match) is used.",
    )


class MaterialCatalogConfig(BaseModel):
    version: int = Field(default=1)
    patterns: list[MaterialPatternConfig] = Field(default_factory=list)

    @field_validator("patterns", mode="before")
    @classmethod
    def _ensure_list(cls, v: Any) -> list:
        if v is None:
            return []
        return v

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "MaterialCatalogConfig":
        return cls.model_validate(data)


@dataclass(frozen=True)
class MaterialPattern:
    vendor: str
    regex: re.Pattern[str]
    item: str | None = None

    def extract(self, notes: str) -> str | None:
        match = self.regex.search(notes)
        if match is None:
            return None
        if self.item is not None:
            return self.item
        if match.groups():
            return match.group(1)
        return match.group(0)


DEFAULT_CATALOG = MaterialCatalogConfig(
    patterns=[
        MaterialPatternConfig(vendor="Roma Moulding", pattern=r"Frame: (R\d+)"),
        MaterialPatternConfig(vendor="Larson Juhl", pattern=r"Frame: (L\d+)"),
        MaterialPatternConfig(vendor="Crescent", pattern=r"Mat: (C\d+)"),
        MaterialPatternConfig(
            vendor="Guardian Glass", pattern=r"Museum Glass", item="Museum Glass"
        ),
    ]
)


def validate_pattern_safety(pattern: str, label: str) -> None:
    if len(pattern) > _MAX_PATTERN_LENGTH:
        raise ValueError(
            f"Unsafe regex in {label} pattern '{pattern}': exceeds "
            f"{_MAX_PATTERN_LENGTH} characters"
        )
    if any(token in pattern for token in _LOOKBEHIND_TOKENS):
        raise ValueError(f"Unsafe regex in {label} pattern '{pattern}': look-behind is not allowed")
    if _BACKREFERENCE_PATTERN.search(pattern):
        raise ValueError(
            f"Unsafe regex in {label} pattern '{pattern}': backreferences are not allowed"
        )
    if _NESTED_QUANTIFIER_PATTERN.search(pattern):
        raise ValueError(
            f"Unsafe regex in {label} pattern '{pattern}': nested quantifiers are not allowed"
        )


def compile_catalog(config: MaterialCatalogConfig) -> tuple[MaterialPattern, ...]:
    compiled: list[MaterialPattern] = []
    for entry in config.patterns:
        label = f"material:{entry.vendor}"
        validate_pattern_safety(entry.pattern, label)
        try:
            regex = re.compile(entry.pattern)
        except re.error as exc:
            raise ValueError(f"Invalid regex in {label} pattern '{entry.pattern}': {exc}") from exc
        if regex.groups > 1:
            raise ValueError(f"Pattern for {label} may capture at most one group")
        compiled.append(MaterialPattern(vendor=entry.vendor, regex=regex, item=entry.item))
    return tuple(compiled)


def load_material_catalog(path: str) -> MaterialCatalogConfig:
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"Material catalog not found: {catalog_path}")
    with catalog_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return MaterialCatalogConfig.from_yaml(data)


DEFAULT_PATTERNS = compile_catalog(DEFAULT_CATALOG)
