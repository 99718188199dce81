"""
Migration Runner.

Runs the undecorated-classes migration for every project of a file tree:

1.  **Discovery**: projects are the ``pyproject.toml`` files declaring a
    ``[tool.di_migrator]`` table (unless explicit config paths are given).
2.  **Analysis**: each project is turned into a program. Projects with config,
    syntax or structural errors are reported and skipped; sibling projects
    still run.
3.  **Transform**: declarations are collected and migrated in three passes.
4.  **Commit**: every touched file is committed once, after all passes.

Per-class failures are returned as ``path@line:column: message`` strings.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from rich.markup import escape

from di_migrator.analysis.diagnostics import format_diagnostics
from di_migrator.analysis.program import Program, create_program
from di_migrator.analysis.source_file import SourceFile
from di_migrator.config import declares_tool_section
from di_migrator.core.collector import DeclarationCollector
from di_migrator.core.import_manager import ImportManager
from di_migrator.core.transform import TransformFailure, UndecoratedClassesTransform
from di_migrator.core.update_recorder import UpdateRecorder
from di_migrator.errors import MigrationError, StructuralError
from di_migrator.tree import FileTree
from di_migrator.utils.console import log_error, log_info, log_success, log_warning

MIGRATION_RERUN_MESSAGE = 'Migration can be rerun with: "di-migrator migrate"'

MIGRATION_ANALYSIS_FAILURE = (
  "This migration analyzes each project as a whole and therefore projects that cannot "
  "be analyzed cannot be migrated. Please fix the errors and rerun the migration."
)


class MigrationResult(BaseModel):
  """
  Outcome of migrating one or more projects.
  """

  failures: List[str] = Field(default_factory=list, description="Formatted per-class failures.")
  program_error: bool = Field(default=False, description="True if a project could not be analyzed.")

  @property
  def has_failures(self) -> bool:
    return len(self.failures) > 0


def find_config_paths(tree: FileTree) -> List[str]:
  """
  Finds the projects of a file tree.

  Args:
      tree: The file tree.

  Returns:
      List[str]: Paths of ``pyproject.toml`` files declaring ``[tool.di_migrator]``.
  """
  paths = []
  for path in tree.list_files():
    if path.rpartition("/")[2] == "pyproject.toml" and declares_tool_section(tree.read(path)):
      paths.append(path)
  return paths


def run_migration(tree: FileTree, config_paths: Optional[Iterable[str]] = None) -> MigrationResult:
  """
  Migrates every project of a file tree and logs a summary.

  Args:
      tree: The file tree to migrate.
      config_paths: Explicit project configs (discovered when omitted).

  Returns:
      MigrationResult: The combined result of all projects.

  Raises:
      MigrationError: If no project configuration can be found.
  """
  paths = list(config_paths) if config_paths else find_config_paths(tree)
  if not paths:
    raise MigrationError(
      "Could not find any pyproject.toml declaring [tool.di_migrator]. Cannot migrate "
      "undecorated classes that use dependency injection."
    )

  result = MigrationResult()
  for config_path in paths:
    project_result = run_undecorated_classes_migration(tree, config_path)
    result.failures.extend(project_result.failures)
    result.program_error = result.program_error or project_result.program_error

  if result.program_error:
    log_info("Could not migrate all undecorated classes that use dependency injection.")
    log_info("Some projects could not be analyzed due to program failures.")
    log_info(escape(MIGRATION_RERUN_MESSAGE))
    if result.failures:
      log_info("Please manually fix the following failures and re-run the migration")
      log_info("once the program failures are resolved.")
      _log_failures(result.failures)
  elif result.failures:
    log_info("Could not migrate all undecorated classes that use dependency injection.")
    log_info("Please manually fix the following failures:")
    _log_failures(result.failures)
    log_info(escape(MIGRATION_RERUN_MESSAGE))
  else:
    log_success("Migrated all undecorated classes that use dependency injection.")
  return result


def run_undecorated_classes_migration(tree: FileTree, config_path: str) -> MigrationResult:
  """
  Migrates a single project.

  Args:
      tree: The file tree.
      config_path: Tree-relative path of the project's ``pyproject.toml``.

  Returns:
      MigrationResult: The project's failures, or ``program_error`` if it could not be analyzed.
  """
  program = gracefully_create_program(tree, config_path)
  if program is None:
    return MigrationResult(program_error=True)

  checker = program.type_checker
  collector = DeclarationCollector(checker, program.config)
  for sf in program.source_files:
    collector.visit_source_file(sf)

  update_recorders: Dict[SourceFile, UpdateRecorder] = {}

  def get_update_recorder(sf: SourceFile) -> UpdateRecorder:
    # One recorder per file: offsets of all edits refer to the parsed text
    if sf not in update_recorders:
      update_recorders[sf] = UpdateRecorder(sf, tree.begin_update(sf.path))
    return update_recorders[sf]

  import_manager = ImportManager(get_update_recorder)
  transform = UndecoratedClassesTransform(checker, program.config, collector, get_update_recorder, import_manager)

  transform_failures: List[TransformFailure] = [
    *transform.migrate_decorated_directives(collector.decorated_directives),
    *transform.migrate_decorated_providers(collector.decorated_providers),
    *transform.migrate_undecorated_declarations(collector.undecorated_declarations),
  ]
  failures = [_format_failure(checker.source_file_of(f.node), f) for f in transform_failures]

  transform.record_changes()
  for recorder in update_recorders.values():
    recorder.commit_update(tree)

  log_info(
    f"Project [path]{escape(config_path)}[/path]: {len(update_recorders)} files updated, {len(failures)} failures."
  )
  return MigrationResult(failures=failures)


def gracefully_create_program(tree: FileTree, config_path: str) -> Optional[Program]:
  """
  Creates the program of a project, reporting rather than raising analysis errors.

  Diagnostics are checked in priority order: configuration, syntax, structure.

  Args:
      tree: The file tree.
      config_path: Tree-relative path of the project's ``pyproject.toml``.

  Returns:
      The program, or None if the project cannot be migrated.
  """
  try:
    program = create_program(config_path, tree)

    if program.config_diagnostics:
      log_warning(
        f"Project [path]{escape(config_path)}[/path] has configuration errors. This could cause "
        "an incomplete migration. Please fix the following failures and rerun the migration:"
      )
      log_error(escape(format_diagnostics(program.config_diagnostics)))
      return None

    # Syntax errors hide classes from the analysis; the migration can be rerun once they are fixed
    if program.syntactic_diagnostics:
      log_warning(
        f"Project [path]{escape(config_path)}[/path] has syntax errors which could cause "
        "an incomplete migration. Please fix the following failures and rerun the migration:"
      )
      log_error(escape(format_diagnostics(program.syntactic_diagnostics)))
      return None

    if program.structural_diagnostics:
      raise StructuralError(format_diagnostics(program.structural_diagnostics))

    return program
  except (MigrationError, OSError, UnicodeDecodeError) as e:
    log_warning(f"{MIGRATION_ANALYSIS_FAILURE} The following project failed: [path]{escape(config_path)}[/path]")
    log_error(escape(str(e)))
    return None


def _format_failure(sf: SourceFile, failure: TransformFailure) -> str:
  line, column = sf.location(failure.node)
  return f"{sf.path}@{line}:{column}: {failure.message}"


def _log_failures(failures: List[str]) -> None:
  for message in failures:
    log_warning(f"⮑   {escape(message)}")
