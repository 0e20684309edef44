"""
Configuration loader (``progress_config.loader``).

Responsibility
--------------
Load individual YAML fragment files and parse them into
``progress_config.schema`` dataclasses.  Build/test tooling only; the
runtime entry point is ``progress_config.get_active_catalog()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric weight  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from progress_config.schema import AliasDef, MilestoneDef, ReportingPolicy, TemplateDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, what: str) -> Decimal:
    """Parse a YAML scalar as Decimal, going through str() for floats."""
    if isinstance(value, bool):
        raise ValueError(f"{what}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{what}: expected a number, got {value!r}") from exc


def parse_milestone(data: dict[str, Any], index: int, component_type: str) -> MilestoneDef:
    """
    Parse one milestone row.

    ``is_partial: true`` is accepted as a synonym for ``kind: partial``.
    ``order`` defaults to the row position (1-based).
    """
    kind = data.get("kind")
    if kind is None:
        kind = "partial" if data.get("is_partial") else "discrete"
    return MilestoneDef(
        name=str(data["name"]),
        weight=parse_decimal(data["weight"], f"{component_type}.{data['name']}.weight"),
        kind=str(kind),
        category=data.get("category"),
        order=int(data.get("order", index + 1)),
        requires_welder=bool(data.get("requires_welder", False)),
    )


def parse_template(data: dict[str, Any], source: str = "") -> TemplateDef:
    """Parse one template entry of a ``templates/*.yaml`` file."""
    component_type = str(data["component_type"])
    milestones = tuple(
        parse_milestone(m, i, component_type) for i, m in enumerate(data["milestones"])
    )
    project_id = data.get("project_id")
    return TemplateDef(
        component_type=component_type,
        milestones=milestones,
        workflow_type=str(data.get("workflow_type", "discrete")),
        project_id=str(project_id) if project_id is not None else None,
        source=source,
    )


def parse_alias(data: dict[str, Any]) -> AliasDef:
    """Parse one alias entry of ``aliases.yaml``."""
    return AliasDef(
        alias=str(data["alias"]),
        canonical=str(data["canonical"]),
        component_type=data.get("component_type"),
    )


def parse_reporting(data: dict[str, Any]) -> ReportingPolicy:
    """Parse ``reporting.yaml``; absent keys keep their defaults."""
    defaults = ReportingPolicy()
    return ReportingPolicy(
        floor_earned_at_high_water_mark=bool(
            data.get("floor_earned_at_high_water_mark", defaults.floor_earned_at_high_water_mark)
        ),
        audit_tolerance=parse_decimal(
            data.get("audit_tolerance", defaults.audit_tolerance), "audit_tolerance"
        ),
        percent_decimal_places=int(
            data.get("percent_decimal_places", defaults.percent_decimal_places)
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
