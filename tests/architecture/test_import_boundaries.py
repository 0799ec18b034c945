"""
Import-boundary enforcement.

1. Engine purity      -- ledger_engines/** may not import the ORM, models,
                         sessions, services or config.
2. No wall clock      -- engines, selectors and services read time through
                         the injected Clock only.
3. Config isolation   -- ledger_kernel/** never imports ledger_config or
                         ledger_services; configuration flows in as arguments.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _parse(filepath: str) -> ast.Module:
    return ast.parse(Path(filepath).read_text(), filename=filepath)


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "ledger_kernel.models",
        "ledger_kernel.db.engine",
        "ledger_kernel.db.transaction",
        "ledger_kernel.selectors",
        "ledger_kernel.services",
        "ledger_services",
        "ledger_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("ledger_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "ledger_engines/** must stay free of persistence, services and "
            "config:\n" + "\n".join(violations)
        )


class TestNoWallClock:

    IMPURE_CALLS = {("datetime", "now"), ("datetime", "utcnow"), ("date", "today")}
    ALLOWED = {"ledger_kernel/domain/clock.py"}

    @pytest.mark.parametrize("package", ["ledger_engines", "ledger_kernel", "ledger_services"])
    def test_no_direct_clock_reads(self, package):
        violations = []
        for filepath in _python_files(package):
            relative = Path(filepath).relative_to(ROOT).as_posix()
            if relative in self.ALLOWED:
                continue
            for node in ast.walk(_parse(filepath)):
                if (
                    isinstance(node, ast.Attribute)
                    and isinstance(node.value, ast.Name)
                    and (node.value.id, node.attr) in self.IMPURE_CALLS
                ):
                    violations.append(f"  {relative}:{node.lineno} {node.value.id}.{node.attr}")
        assert not violations, "Use the injected Clock:\n" + "\n".join(violations)


class TestKernelIsolation:

    def test_kernel_does_not_import_config_or_services(self):
        violations = _violations("ledger_kernel", ("ledger_config", "ledger_services"))
        assert not violations, (
            "ledger_kernel/** must receive configuration as arguments:\n"
            + "\n".join(violations)
        )
