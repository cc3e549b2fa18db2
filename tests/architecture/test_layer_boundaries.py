"""
Layer boundaries of the three packages.

1. ledger_kernel/** may NOT import ledger_services or ledger_config.
   The kernel never depends upward.

2. ledger_config/** may NOT import ledger_services.

3. ledger_kernel/domain/** is the pure core: no SQLAlchemy, no
   services, no logging.

These tests read source code via AST and never import the packages.
"""

import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((REPO_ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {filepath.relative_to(REPO_ROOT)}:{lineno} imports '{module}'")
    return found


class TestNoUpwardDependencies:
    """Imports only flow kernel <- config <- services."""

    def test_packages_present(self):
        for package in ("ledger_kernel", "ledger_config", "ledger_services"):
            assert _python_files(package), f"{package} has no modules"

    def test_kernel_does_not_import_outer_packages(self):
        violations = _violations("ledger_kernel", ("ledger_services", "ledger_config"))
        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations("ledger_config", ("ledger_services",))
        assert not violations, (
            "Config boundary violation:\n" + "\n".join(violations)
        )


class TestPureDomain:
    """ledger_kernel/domain has zero I/O."""

    FORBIDDEN = (
        "sqlalchemy",
        "ledger_kernel.db",
        "ledger_kernel.models",
        "ledger_kernel.services",
        "ledger_kernel.selectors",
        "ledger_kernel.logging_config",
        "logging",
    )

    def test_domain_imports_are_pure(self):
        violations = _violations("ledger_kernel/domain", self.FORBIDDEN)
        assert not violations, (
            "Pure domain violation:\n" + "\n".join(violations)
        )
