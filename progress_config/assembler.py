"""
progress_config.assembler -- composes YAML fragments into one catalog set.

Responsibility:
    Humans edit small YAML fragments, one per component type or family.
    This module composes them into a single ``CatalogConfigurationSet``.
    Runtime only ever sees the compiled ``CompiledCatalog``.

Fragment structure::

    sets/standard-v2/
    +-- root.yaml              # catalog_id, version, status, predecessor
    +-- templates/             # one or more templates per file
    |   +-- piping.yaml
    |   +-- ...
    +-- aliases.yaml           # milestone name aliases (optional)
    +-- reporting.yaml         # reporting policy (optional)
    +-- APPROVED_FINGERPRINT   # pin (optional, see integrity.py)

Invariants enforced:
    - ``root.yaml`` must exist and name ``catalog_id`` and ``version``.
    - A deterministic SHA-256 checksum is computed over everything that
      was assembled, in sorted file order.

Failure modes:
    - ``AssemblyError`` -- missing directory, missing ``root.yaml`` or a
      malformed fragment.
    - ``yaml.YAMLError`` -- invalid YAML syntax (propagated from loader).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from progress_config.lifecycle import ConfigStatus
from progress_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_alias,
    parse_date,
    parse_reporting,
    parse_template,
)
from progress_config.schema import AliasDef, CatalogConfigurationSet, ReportingPolicy, TemplateDef
from progress_kernel.exceptions import ProgressKernelError


class AssemblyError(ProgressKernelError):
    """A fragment directory is missing, incomplete or malformed."""

    code: str = "ASSEMBLY_FAILED"


def assemble_from_directory(fragment_dir: Path) -> CatalogConfigurationSet:
    """Compose fragments from a directory into one catalog set.

    Args:
        fragment_dir: e.g. ``progress_config/sets/standard-v2/``.

    Raises:
        AssemblyError: If required fragments are missing or malformed.
    """
    if not fragment_dir.is_dir():
        raise AssemblyError(f"Fragment directory not found: {fragment_dir}")

    root_path = fragment_dir / "root.yaml"
    if not root_path.exists():
        raise AssemblyError(f"root.yaml not found in {fragment_dir}")
    root_data = load_yaml_file(root_path)
    for key in ("catalog_id", "version"):
        if key not in root_data:
            raise AssemblyError(f"{root_path}: missing required key '{key}'")

    raw_templates: list[dict[str, Any]] = []
    templates: list[TemplateDef] = []
    templates_dir = fragment_dir / "templates"
    if templates_dir.is_dir():
        for template_file in sorted(templates_dir.glob("*.yaml")):
            data = load_yaml_file(template_file)
            for entry in data.get("templates", []):
                try:
                    templates.append(parse_template(entry, source=template_file.name))
                except (KeyError, TypeError, ValueError) as exc:
                    raise AssemblyError(
                        f"{template_file.name}: malformed template entry: {exc}"
                    ) from exc
                raw_templates.append(entry)

    aliases: tuple[AliasDef, ...] = ()
    raw_aliases: list[Any] = []
    aliases_path = fragment_dir / "aliases.yaml"
    if aliases_path.exists():
        raw_aliases = load_yaml_file(aliases_path).get("aliases", [])
        try:
            aliases = tuple(parse_alias(a) for a in raw_aliases)
        except (KeyError, TypeError) as exc:
            raise AssemblyError(f"aliases.yaml: malformed alias entry: {exc}") from exc

    reporting = ReportingPolicy()
    raw_reporting: dict[str, Any] = {}
    reporting_path = fragment_dir / "reporting.yaml"
    if reporting_path.exists():
        raw_reporting = load_yaml_file(reporting_path)
        try:
            reporting = parse_reporting(raw_reporting)
        except (TypeError, ValueError) as exc:
            raise AssemblyError(f"reporting.yaml: {exc}") from exc

    checksum = compute_checksum(
        {
            "root": root_data,
            "templates": raw_templates,
            "aliases": raw_aliases,
            "reporting": raw_reporting,
        }
    )

    effective_from = root_data.get("effective_from")
    return CatalogConfigurationSet(
        catalog_id=str(root_data["catalog_id"]),
        version=int(root_data["version"]),
        status=ConfigStatus(root_data.get("status", "draft")),
        effective_from=parse_date(effective_from) if effective_from else None,
        templates=tuple(templates),
        aliases=aliases,
        reporting=reporting,
        predecessor=root_data.get("predecessor"),
        description=str(root_data.get("description", "")),
        checksum=checksum,
    )
