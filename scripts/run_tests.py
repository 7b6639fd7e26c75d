#!/usr/bin/env python
"""
Simple test runner for slackapproval unit tests.

Runs all tests, or the tests of a single module:

    python scripts/run_tests.py
    python scripts/run_tests.py registry      # tests/daemon/test_registry.py
"""

import sys
import subprocess
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def find_test_module(name):
    """Locate tests/**/test_<name>.py, returning its path relative to the root."""
    if not name.startswith("test_"):
        name = f"test_{name}"
    if not name.endswith(".py"):
        name = f"{name}.py"
    matches = sorted((PROJECT_ROOT / "tests").rglob(name))
    return str(matches[0].relative_to(PROJECT_ROOT)) if matches else None


def run_tests(test_path="tests/", verbose=True):
    """
    Run pytest on a test file or directory.

    Args:
        test_path: Test file or directory relative to the project root
        verbose: Whether to run with verbose output
    """
    os.chdir(PROJECT_ROOT)

    # Use sys.executable to get current Python interpreter
    cmd = [sys.executable, "-m", "pytest", test_path]

    if verbose:
        cmd.append("-v")

    # Add short traceback for cleaner output
    cmd.append("--tb=short")

    print(f"Running: {' '.join(cmd)}")
    print("=" * 60)

    try:
        result = subprocess.run(cmd, check=False)
        return result.returncode == 0
    except FileNotFoundError:
        print("Error: pytest not found. Install with: pip install -e \".[test]\"")
        return False


def main():
    """Main entry point for test runner."""
    if len(sys.argv) > 1:
        test_path = find_test_module(sys.argv[1])
        if test_path is None:
            print(f"No test module found for: {sys.argv[1]}")
            sys.exit(1)

        print(f"Running tests for module: {test_path}")
        success = run_tests(test_path)
    else:
        print("Running all unit tests...")
        success = run_tests()

    if success:
        print("\n✅ All tests passed!")
    else:
        print("\n❌ Some tests failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
