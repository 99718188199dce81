"""
di-migrator Package.

A source-to-source migration for Python projects built on a decorator-based
dependency-injection framework. Classes whose constructors need injected
dependencies but lack DI metadata receive the framework's injectable decorator
and the import that brings it into scope; classes that cannot be migrated safely
are reported instead.

Usage
-----

.. code-block:: python

    from di_migrator import DiskTree, run_migration

    tree = DiskTree("path/to/repo")
    result = run_migration(tree)

    for failure in result.failures:
        print(failure)
"""

__version__ = "0.0.1"

from di_migrator.core.engine import MigrationResult, run_migration
from di_migrator.tree import DiskTree, MemoryTree

__all__ = [
  "DiskTree",
  "MemoryTree",
  "MigrationResult",
  "run_migration",
  "__version__",
]
