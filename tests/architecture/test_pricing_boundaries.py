"""
Layer boundaries for the pricing packages.

    pricing_kernel   -> nothing above it
    pricing_config   -> pricing_kernel
    pricing_engines  -> pricing_kernel (types, domain, exceptions, logging),
                        pricing_config.schema
    pricing_batch    -> pricing_engines, pricing_kernel
    pricing_services -> everything below

Engines are pure: no SQLAlchemy, no sessions, no ORM models.

These tests read source code via AST and never import the packages.
"""

import ast
import glob
from pathlib import Path


def _python_files(root: str) -> list[str]:
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:

    def test_kernel_imports_nothing_above_it(self):
        violations = _violations(
            "pricing_kernel",
            ("pricing_config", "pricing_engines", "pricing_batch", "pricing_services"),
        )
        assert not violations, "pricing_kernel must not depend upward:\n" + "\n".join(violations)


class TestConfigBoundary:

    def test_config_depends_on_kernel_only(self):
        violations = _violations(
            "pricing_config",
            ("pricing_engines", "pricing_batch", "pricing_services", "sqlalchemy"),
        )
        assert not violations, "pricing_config boundary violation:\n" + "\n".join(violations)


class TestEnginePurity:

    FORBIDDEN = (
        "sqlalchemy",
        "pricing_kernel.models",
        "pricing_kernel.db.engine",
        "pricing_batch",
        "pricing_services",
    )

    def test_engines_hold_no_sessions(self):
        violations = _violations("pricing_engines", self.FORBIDDEN)
        assert not violations, "pricing_engines must stay pure:\n" + "\n".join(violations)

    def test_engines_read_config_schema_only(self):
        """Engines take policy objects; loading configuration is a service concern."""
        violations = [
            f"  {path}:{lineno} imports '{module}'"
            for path in _python_files("pricing_engines")
            for lineno, module in _extract_imports(path)
            if module.startswith("pricing_config") and module != "pricing_config.schema"
        ]
        assert not violations, "\n".join(violations)


class TestBatchBoundary:

    def test_batch_does_not_import_services(self):
        violations = _violations("pricing_batch", ("pricing_services",))
        assert not violations, "\n".join(violations)


class TestNoTestImportsInSource:

    def test_source_never_imports_tests(self):
        violations = []
        for root in (
            "pricing_kernel",
            "pricing_config",
            "pricing_engines",
            "pricing_batch",
            "pricing_services",
        ):
            violations += _violations(root, ("tests", "pytest", "hypothesis"))
        assert not violations, "\n".join(violations)
