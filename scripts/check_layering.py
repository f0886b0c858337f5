#!/usr/bin/env python3
"""Layering validation script.

Enforces the rule that the engine core stays independent of concrete
channels and of the command-line layer: modules under core/, types/ and
utils/ may not import notification_dispatch.channels or
notification_dispatch.app, nor the transport and CLI libraries those layers
wrap (aiosmtplib, click).

Exit codes:
    0: No violations found (clean)
    1: Violations detected
"""

from __future__ import annotations

import ast
import sys
from pathlib import Path
from typing import Final

RED: Final[str] = "\033[91m"
GREEN: Final[str] = "\033[92m"
YELLOW: Final[str] = "\033[93m"
RESET: Final[str] = "\033[0m"

PROTECTED_DIRS: Final[tuple[str, ...]] = ("core", "types", "utils")

FORBIDDEN_PREFIXES: Final[tuple[str, ...]] = (
    "notification_dispatch.channels",
    "notification_dispatch.app",
    "aiosmtplib",
    "click",
)


def _imported_modules(tree: ast.AST) -> list[tuple[int, str]]:
    modules: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            modules.append((node.lineno, node.module))
    return modules


def _is_forbidden(module: str) -> bool:
    return any(module == prefix or module.startswith(f"{prefix}.") for prefix in FORBIDDEN_PREFIXES)


def check_file(file_path: Path) -> list[tuple[int, str]]:
    """Return (line_number, description) for every forbidden import in a file."""
    try:
        tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
    except (OSError, SyntaxError) as e:
        print(f"{YELLOW}Warning: Could not parse {file_path}: {e}{RESET}", file=sys.stderr)
        return []

    return [
        (line_num, f"Forbidden import of {module}")
        for line_num, module in _imported_modules(tree)
        if _is_forbidden(module)
    ]


def scan_directory(base_path: Path, protected_dir: str) -> dict[Path, list[tuple[int, str]]]:
    """Scan one protected directory for violations."""
    dir_path = base_path / protected_dir
    if not dir_path.exists():
        print(f"{YELLOW}Warning: Protected directory {dir_path} does not exist{RESET}", file=sys.stderr)
        return {}

    violations_by_file: dict[Path, list[tuple[int, str]]] = {}
    for py_file in dir_path.rglob("*.py"):
        if "__pycache__" in py_file.parts:
            continue
        file_violations = check_file(py_file)
        if file_violations:
            violations_by_file[py_file] = file_violations
    return violations_by_file


def main() -> int:
    project_root = Path(__file__).parent.parent
    src_path = project_root / "src" / "notification_dispatch"

    if not src_path.exists():
        print(f"{RED}Error: Could not find src/notification_dispatch directory{RESET}", file=sys.stderr)
        return 1

    print("Checking that core, types, and utils do not depend on channels or the CLI...")
    print(f"Scanning: {src_path}\n")

    all_violations: dict[Path, list[tuple[int, str]]] = {}
    for protected_dir in PROTECTED_DIRS:
        all_violations.update(scan_directory(src_path, protected_dir))

    if not all_violations:
        print(f"{GREEN}✓ No layering violations found{RESET}")
        return 0

    total_violations = sum(len(v) for v in all_violations.values())
    print(f"{RED}✗ Found {total_violations} layering violations:{RESET}\n")
    for file_path, violations in sorted(all_violations.items()):
        try:
            rel_path = file_path.relative_to(project_root)
        except ValueError:
            rel_path = file_path
        print(f"{RED}{rel_path}{RESET}")
        for line_num, description in violations:
            print(f"  {line_num}: {description}")
        print()

    print(f"{RED}Layering check failed!{RESET}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
