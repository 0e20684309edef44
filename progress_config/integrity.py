"""
Catalog integrity -- fingerprint pinning for approved catalog sets.

When a set directory contains an APPROVED_FINGERPRINT file, the compiled
canonical fingerprint must match the pinned value.  A weight edited in
place after approval would otherwise silently change every percent
computed with that version.

The pin file is a single line: the SHA-256 hex string of
``CompiledCatalog.canonical_fingerprint``.  Without a pin file the check
is skipped (draft workflow).
"""

from __future__ import annotations

from pathlib import Path

from progress_kernel.exceptions import CatalogIntegrityError

PINFILE_NAME = "APPROVED_FINGERPRINT"


def read_pinned_fingerprint(set_dir: Path) -> str | None:
    """The pinned fingerprint, or None if the set has no pin file."""
    pin_path = set_dir / PINFILE_NAME
    if not pin_path.is_file():
        return None
    return pin_path.read_text().strip()


def write_pinned_fingerprint(set_dir: Path, canonical_fingerprint: str) -> Path:
    """Pin a fingerprint (used when approving a set)."""
    pin_path = set_dir / PINFILE_NAME
    pin_path.write_text(canonical_fingerprint + "\n")
    return pin_path


def verify_fingerprint_pin(
    catalog_id: str,
    canonical_fingerprint: str,
    set_dir: Path,
) -> None:
    """
    No-op without a pin file.

    Raises:
        CatalogIntegrityError: If a pin exists and does not match.
    """
    pinned = read_pinned_fingerprint(set_dir)
    if pinned is None:
        return

    if canonical_fingerprint != pinned:
        raise CatalogIntegrityError(
            catalog_id=catalog_id,
            expected=pinned,
            actual=canonical_fingerprint,
            pin_path=set_dir / PINFILE_NAME,
        )
