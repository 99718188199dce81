"""
Program Front-End.

`create_program` turns a project configuration path into a :class:`Program`:

1.  **Configuration**: the ``[tool.di_migrator]`` table is loaded and validated.
    Problems become config diagnostics and stop further analysis.
2.  **Parsing**: every project module under the configured source roots is read
    through the file tree and parsed with LibCST. Parse errors become syntactic
    diagnostics; the file is left out of the program.
3.  **Indexing**: a :class:`TypeChecker` is built over the parsed modules.
4.  **Structure**: framework-level inconsistencies (conflicting DI decorators,
    cyclic inheritance) become structural diagnostics.
"""

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import libcst as cst
from pydantic import ValidationError

from di_migrator.analysis.checker import TypeChecker
from di_migrator.analysis.diagnostics import Diagnostic, DiagnosticCategory
from di_migrator.analysis.source_file import SourceFile
from di_migrator.config import ProjectConfig, format_validation_error, parse_project_config, tomllib
from di_migrator.errors import ProgramError
from di_migrator.tree import FileTree, normalize_path

logger = logging.getLogger(__name__)


@dataclass
class Program:
  """
  The analyzed form of one project.

  Attributes:
      config_path: Tree-relative path of the project's pyproject.toml.
      root: Tree-relative directory containing the config.
      config: The validated project config (None if invalid).
      source_files: Parsed modules, sorted by path.
      type_checker: Resolver over `source_files`.
  """

  config_path: str
  root: str
  config: Optional[ProjectConfig]
  source_files: List[SourceFile] = field(default_factory=list)
  type_checker: Optional[TypeChecker] = None
  config_diagnostics: List[Diagnostic] = field(default_factory=list)
  syntactic_diagnostics: List[Diagnostic] = field(default_factory=list)
  structural_diagnostics: List[Diagnostic] = field(default_factory=list)


def create_program(config_path: str, tree: FileTree) -> Program:
  """
  Builds the program for a project.

  Args:
      config_path: Tree-relative path of the project's ``pyproject.toml``.
      tree: The file tree to read from.

  Returns:
      Program: The analyzed program, possibly carrying diagnostics.

  Raises:
      ProgramError: If the configuration file does not exist.
  """
  config_path = normalize_path(config_path)
  root = config_path.rpartition("/")[0]

  if not tree.exists(config_path):
    raise ProgramError(f"Configuration file '{config_path}' does not exist.")

  program = Program(config_path=config_path, root=root, config=None)

  try:
    program.config = parse_project_config(tree.read(config_path))
  except tomllib.TOMLDecodeError as e:
    program.config_diagnostics.append(_config_diagnostic(config_path, f"Invalid TOML: {e}"))
    return program
  except ValidationError as e:
    for line in format_validation_error(e):
      program.config_diagnostics.append(_config_diagnostic(config_path, line))
    return program

  roots = [_join(root, src) for src in program.config.sources]
  for src_root in roots:
    if src_root and not tree.list_files(src_root):
      program.config_diagnostics.append(_config_diagnostic(config_path, f"Source root '{src_root}' does not exist."))
  if program.config_diagnostics:
    return program

  for path, module_name, is_package in discover_modules(tree, root, roots, program.config.exclude):
    try:
      program.source_files.append(SourceFile(path, module_name, tree.read(path), is_package))
    except cst.ParserSyntaxError as e:
      program.syntactic_diagnostics.append(
        Diagnostic(
          DiagnosticCategory.SYNTACTIC,
          e.message,
          path=path,
          line=e.editor_line,
          column=e.editor_column,
        )
      )

  logger.debug("Parsed %d modules for %s", len(program.source_files), config_path)

  program.type_checker = TypeChecker(program.source_files)
  program.structural_diagnostics = find_structural_diagnostics(program.type_checker, program.config)
  return program


def discover_modules(
  tree: FileTree,
  root: str,
  source_roots: List[str],
  exclude: List[str],
) -> List[Tuple[str, str, bool]]:
  """
  Lists the modules of a project.

  Args:
      tree: The file tree.
      root: Directory of the project config.
      source_roots: Tree-relative source root directories.
      exclude: Glob patterns relative to `root`.

  Returns:
      List of (path, module name, is_package) tuples sorted by path. A file
      below several roots belongs to the first root listed.
  """
  seen: Set[str] = set()
  modules = []
  for src_root in source_roots:
    for path in tree.list_files(src_root):
      if not path.endswith(".py") or path in seen:
        continue
      rel_to_config = path[len(root) + 1 :] if root else path
      if any(fnmatch.fnmatch(rel_to_config, pattern) for pattern in exclude):
        continue
      rel_to_root = path[len(src_root) + 1 :] if src_root else path
      parts = rel_to_root[: -len(".py")].split("/")
      is_package = parts[-1] == "__init__"
      if is_package:
        parts = parts[:-1]
      if not parts or not all(p.isidentifier() for p in parts):
        continue
      seen.add(path)
      modules.append((path, ".".join(parts), is_package))
  return sorted(modules)


def find_structural_diagnostics(checker: TypeChecker, config: ProjectConfig) -> List[Diagnostic]:
  """
  Detects framework-level inconsistencies.

  Args:
      checker: The program's type checker.
      config: The project config naming the DI decorators.

  Returns:
      List[Diagnostic]: Structural diagnostics in source order.
  """
  diagnostics = []
  directives = set(config.directive_names)
  providers = set(config.provider_names)

  for sf in checker.source_files:
    for record in sf.index.classes:
      names = {ref.qualified_name for ref in checker.decorators(record.node)}
      if names & directives and names & providers:
        line, column = sf.location(record.node)
        diagnostics.append(
          Diagnostic(
            DiagnosticCategory.STRUCTURAL,
            f"Class '{record.qualname}' is decorated as both a directive and a provider.",
            path=sf.path,
            line=line,
            column=column,
          )
        )

  for node in _find_inheritance_cycles(checker):
    sf = checker.source_file_of(node)
    line, column = sf.location(node)
    diagnostics.append(
      Diagnostic(
        DiagnosticCategory.STRUCTURAL,
        f"Class '{checker.record_of(node).qualname}' is part of an inheritance cycle.",
        path=sf.path,
        line=line,
        column=column,
      )
    )
  return diagnostics


def _find_inheritance_cycles(checker: TypeChecker) -> List[cst.ClassDef]:
  """Returns one class per inheritance cycle, the first reached in source order."""
  state: Dict[cst.ClassDef, int] = {}
  reported = []

  def visit(node: cst.ClassDef) -> None:
    state[node] = 1
    for _, symbol in checker.base_classes(node):
      if not symbol.is_project_class:
        continue
      base_state = state.get(symbol.node, 0)
      if base_state == 1:
        reported.append(symbol.node)
      elif base_state == 0:
        visit(symbol.node)
    state[node] = 2

  for sf in checker.source_files:
    for record in sf.index.classes:
      if state.get(record.node, 0) == 0:
        visit(record.node)
  return reported


def _config_diagnostic(path: str, message: str) -> Diagnostic:
  return Diagnostic(DiagnosticCategory.CONFIG, message, path=path)


def _join(root: str, rel: str) -> str:
  if not root:
    return normalize_path(rel)
  return normalize_path(f"{root}/{rel}")
