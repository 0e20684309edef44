"""
Import-boundary enforcement for the layered packages.

1. Engine purity      -- progress_engines/** may not import DB, ORM, models,
                         selectors, services, or config layers.
2. Engine no-impure   -- progress_engines/** may not call wall-clock or
                         environment functions.
3. Domain purity      -- progress_kernel/domain/** may not import the ORM.
4. Config centralisation -- only progress_config/ may import its internal
                         sub-modules (loader, assembler, validator).
5. Dependency direction -- validates the full dependency DAG.

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under *root*, relative to the repo, sorted."""
    paths = glob.glob(str(ROOT / root / "**" / "*.py"), recursive=True)
    return sorted(Path(p).relative_to(ROOT).as_posix() for p in paths)


def _parse(filepath: str) -> ast.AST | None:
    try:
        return ast.parse((ROOT / filepath).read_text(), filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == prefix or module.startswith(f"{prefix}.") for prefix in prefixes)


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = _parse(filepath)
    if tree is None:
        return []

    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _violations(source_root: str, forbidden: tuple[str, ...]) -> list[str]:
    return [
        f"  {filepath}:{lineno} imports '{module}'"
        for filepath in _python_files(source_root)
        for lineno, module in _extract_imports(filepath)
        if _matches_any(module, forbidden)
    ]


# ---------------------------------------------------------------------------
# 1. TestEnginePurity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """progress_engines/** may not import DB drivers, ORM, kernel
    models/db/selectors, services, or config."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "progress_kernel.models",
        "progress_kernel.db",
        "progress_kernel.selectors",
        "progress_services",
        "progress_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        assert _python_files("progress_engines")
        violations = _violations("progress_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation -- progress_engines/** must not import "
            "DB drivers, ORM, kernel models/db, services, or config:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. TestEngineNoImpureFunctions
# ---------------------------------------------------------------------------

class TestEngineNoImpureFunctions:
    """progress_engines/** may not call wall-clock or environment functions.

    Allowed (observational-only):
        time.monotonic
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls_in_engines(self):
        violations = [
            f"  {filepath}:{lineno} calls '{qualname}'"
            for filepath in _python_files("progress_engines")
            for lineno, qualname in _extract_attribute_calls(filepath)
            if qualname in self.FORBIDDEN_CALLS
        ]

        assert not violations, (
            "Engine impurity violation -- progress_engines/** must not call "
            "wall-clock or environment functions.  Take times as "
            "arguments instead:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. TestDomainPurity
# ---------------------------------------------------------------------------

class TestDomainPurity:
    """progress_kernel/domain/** holds frozen value types only."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "progress_kernel.models",
        "progress_kernel.db",
        "progress_kernel.selectors",
    )

    def test_domain_has_no_orm_imports(self):
        violations = _violations("progress_kernel/domain", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Domain purity violation -- progress_kernel/domain/** must not "
            "import the ORM:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. TestConfigCentralization
# ---------------------------------------------------------------------------

class TestConfigCentralization:
    """Only progress_config/ may import its internal sub-modules.

    External code imports from:
        progress_config          (get_active_catalog, CompiledCatalog)
        progress_config.integrity / lifecycle / schema

    Forbidden external imports:
        progress_config.loader
        progress_config.assembler
        progress_config.validator
    """

    FORBIDDEN_INTERNAL_MODULES = (
        "progress_config.loader",
        "progress_config.assembler",
        "progress_config.validator",
    )

    def test_no_external_import_of_config_internals(self):
        violations: list[str] = []
        for root in ("progress_kernel", "progress_engines", "progress_services", "tests"):
            violations.extend(_violations(root, self.FORBIDDEN_INTERNAL_MODULES))

        assert not violations, (
            "Config centralisation violation -- only progress_config/ may "
            "import its internal sub-modules:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 5. TestDependencyDirection
# ---------------------------------------------------------------------------

class TestDependencyDirection:
    """Verify the overall dependency DAG:

    Allowed edges (-> means "may import"):
        progress_services -> progress_kernel, progress_engines, progress_config
        progress_config   -> progress_kernel.domain, progress_kernel.exceptions,
                             progress_kernel.logging_config
        progress_engines  -> progress_kernel.domain, progress_kernel.exceptions,
                             progress_kernel.logging_config
        progress_kernel   -> (stdlib, sqlalchemy + internal)
    """

    RULES: list[tuple[str, tuple[str, ...]]] = [
        (
            "progress_kernel",
            ("progress_services", "progress_config", "progress_engines"),
        ),
        (
            "progress_config",
            (
                "progress_services",
                "progress_engines",
                "progress_kernel.models",
                "progress_kernel.db",
                "progress_kernel.selectors",
            ),
        ),
        (
            "progress_engines",
            ("progress_services", "progress_config"),
        ),
    ]

    def test_dependency_dag(self):
        violations: list[str] = []
        for source_root, forbidden in self.RULES:
            violations.extend(f"  [{source_root}]{v}" for v in _violations(source_root, forbidden))

        assert not violations, (
            "Dependency direction violation -- the following imports break "
            "the layered architecture DAG:\n" + "\n".join(violations)
        )
