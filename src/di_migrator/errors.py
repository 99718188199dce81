"""
Exception Hierarchy.

Errors raised by the front-end, the virtual file tree and the migration runner.
Per-class migration problems are not exceptions: they are collected as
:class:`di_migrator.core.transform.TransformFailure` records.
"""


class MigrationError(Exception):
  """Base class for all errors raised by di-migrator."""


class ConfigError(MigrationError):
  """
  Raised when a project configuration cannot be loaded at all.

  Validation problems inside a readable configuration are reported as
  config diagnostics instead.
  """


class StructuralError(MigrationError):
  """
  Raised when the front-end detects framework-level inconsistencies.

  Caught at the project boundary; the project is skipped.
  """


class ProgramError(MigrationError):
  """Raised when a program cannot be constructed for a project."""


class UpdateConflictError(MigrationError):
  """Raised when a second update handle is requested for a file with an open handle."""


class EditConflictError(MigrationError):
  """Raised when buffered edits describe overlapping or out-of-range text regions."""
