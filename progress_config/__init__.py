"""
progress_config -- single public entrypoint for milestone catalog configuration.

Responsibility:
    ``get_active_catalog()`` is the ONLY way to obtain a milestone catalog
    at runtime.  It returns a ``CompiledCatalog``: the validated
    ``MilestoneCatalog`` plus the ``ReportingPolicy`` of that version.

Architecture position:
    Configuration -- sits above ``progress_kernel`` and below
    ``progress_services``.  The kernel MUST NEVER import from here.

Invariants enforced:
    - Single entrypoint: runtime catalogs flow through ``get_active_catalog()``.
    - Load-time validation: weights sum to 100, unique names, known
      categories, non-shadowing aliases.  An invalid set never compiles.
    - Fingerprint pinning: an APPROVED_FINGERPRINT file must match.

Failure modes:
    - ``FileNotFoundError`` -- sets directory missing or empty.
    - ``CatalogVersionNotFoundError`` -- requested version not available.
    - ``CatalogValidationError`` -- validation failed.
    - ``CatalogIntegrityError`` -- fingerprint pin mismatch.

Every successful call emits a ``PROGRESS_CATALOG_TRACE`` log record with the
catalog id, version, checksum and fingerprint, tying every computed percent
back to the weights that produced it.
"""

from __future__ import annotations

from pathlib import Path

from progress_config.assembler import AssemblyError, assemble_from_directory
from progress_config.compiler import CompiledCatalog, compile_catalog
from progress_config.integrity import verify_fingerprint_pin
from progress_config.lifecycle import LOADABLE_BY_VERSION, ConfigStatus
from progress_config.schema import CatalogConfigurationSet, ReportingPolicy
from progress_kernel.exceptions import CatalogVersionNotFoundError
from progress_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "AssemblyError",
    "CompiledCatalog",
    "ReportingPolicy",
    "get_active_catalog",
    "list_catalog_sets",
]


def get_active_catalog(
    version: int | None = None,
    config_dir: Path | None = None,
    catalog_id: str | None = None,
) -> CompiledCatalog:
    """The ONLY public catalog entrypoint.

    Args:
        version: Specific catalog version (published or superseded).
            None selects the highest published version.
        config_dir: Override path to the sets directory.
            Defaults to ``progress_config/sets/``.
        catalog_id: Restrict to one catalog id when the directory holds
            several.

    Raises:
        FileNotFoundError: If the sets directory does not exist or is empty.
        CatalogVersionNotFoundError: If no set matches.
        CatalogValidationError: If the set fails validation.
        CatalogIntegrityError: If the fingerprint pin does not match.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    config_set, set_dir = _find_catalog_set(sets_dir, version, catalog_id)

    compiled = compile_catalog(config_set)

    assert compiled.checksum == config_set.checksum, (
        f"Checksum drift: compiled={compiled.checksum!r} != source={config_set.checksum!r}"
    )

    _logger.info(
        "PROGRESS_CATALOG_TRACE",
        extra={
            "trace_type": "PROGRESS_CATALOG_TRACE",
            "catalog_id": compiled.catalog_id,
            "catalog_version": compiled.version,
            "catalog_status": compiled.status.value,
            "checksum": compiled.checksum,
            "canonical_fingerprint": compiled.canonical_fingerprint,
            "template_count": len(compiled.catalog.templates),
            "project_template_count": len(compiled.catalog.project_templates),
            "alias_count": len(compiled.catalog.aliases),
            "warning_count": len(compiled.warnings),
        },
    )

    verify_fingerprint_pin(
        catalog_id=compiled.catalog_id,
        canonical_fingerprint=compiled.canonical_fingerprint,
        set_dir=set_dir,
    )
    return compiled


def list_catalog_sets(config_dir: Path | None = None) -> list[tuple[CatalogConfigurationSet, Path]]:
    """Every assembled set under the sets directory, in directory order."""
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Catalog sets directory not found: {sets_dir}")
    return [
        (assemble_from_directory(subdir), subdir)
        for subdir in sorted(sets_dir.iterdir())
        if subdir.is_dir() and (subdir / "root.yaml").exists()
    ]


def _find_catalog_set(
    sets_dir: Path, version: int | None, catalog_id: str | None
) -> tuple[CatalogConfigurationSet, Path]:
    """Pick the requested (or highest published) set.

    Falls back to the only available set when nothing is published, for
    development convenience.
    """
    all_sets = list_catalog_sets(sets_dir)
    if catalog_id is not None:
        all_sets = [(c, p) for c, p in all_sets if c.catalog_id == catalog_id]
    if not all_sets:
        raise FileNotFoundError(f"No catalog sets found in {sets_dir}")

    available = tuple(sorted({c.version for c, _ in all_sets}))

    if version is not None:
        matches = [
            (c, p) for c, p in all_sets
            if c.version == version and c.status in LOADABLE_BY_VERSION
        ]
        if not matches:
            matches = [(c, p) for c, p in all_sets if c.version == version]
            if len(all_sets) > 1 or not matches:
                raise CatalogVersionNotFoundError(version, available)
        return matches[0]

    published = [(c, p) for c, p in all_sets if c.status == ConfigStatus.PUBLISHED]
    if published:
        return max(published, key=lambda pair: pair[0].version)
    if len(all_sets) == 1:
        return all_sets[0]
    raise CatalogVersionNotFoundError(None, available)
