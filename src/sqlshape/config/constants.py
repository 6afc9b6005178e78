"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are protocol constraints and implementation details.

For configurable values, see models.py.
"""

# =============================================================================
# Call-site identity
# =============================================================================

RUNTIME_MODULE = "sqlshape.runtime"
"""Module that exports the query/execute operations recognised as call sites."""

QUERY_OPERATION = f"{RUNTIME_MODULE}.query"
"""Fully-qualified name of the query operation."""

EXECUTE_OPERATION = f"{RUNTIME_MODULE}.execute"
"""Fully-qualified name of the execute operation."""

# =============================================================================
# Project layout
# =============================================================================

CONFIG_DIR_NAME = ".sqlshape"
"""Per-project directory holding config.yaml."""

GENERATED_PACKAGE_ENV = "SQLSHAPE_GENERATED_PACKAGE"
"""Env var naming the generated package the runtime imports on a registry miss."""

DEFAULT_GENERATED_PACKAGE = "sqlshape_generated"

GENERATED_MARKER = "# Generated by sqlshape. Do not edit."
"""First line of every generated file; DirectorySink only deletes files carrying it."""

# =============================================================================
# Discovery
# =============================================================================

PRUNABLE_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        ".bzr",
        # sqlshape data
        CONFIG_DIR_NAME,
        # Python ecosystem
        "venv",
        ".venv",
        ".virtualenv",
        "env",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".tox",
        ".nox",
        ".eggs",
        "site-packages",
        "build",
        "dist",
        # Other ecosystems
        "node_modules",
    )
)
"""Directories never scanned for call sites."""
