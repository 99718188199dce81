"""
Import Manager.

Makes framework symbols available in the files that receive new decorators:

1.  **Reuse**: an existing top-level ``from module import symbol [as x]``,
    ``from module import *`` or ``import module [as m]`` already provides an
    identifier; nothing is added.
2.  **Merge**: otherwise the symbol is added to an existing
    ``from module import ...`` clause of the file.
3.  **Add**: otherwise a new ``from module import ...`` statement is added after
    the last top-level import, the module docstring and ``__future__`` imports,
    or before the first statement.

Python runs imports in order, so an import only counts when it starts before
the class that uses the symbol. Reused and merged imports must precede it, and
new statements are placed before the earliest class of the file that needs
them.

A name that is already used in the file is imported under the first free
``symbol_N`` alias. Requests are cached per file, so a symbol is never
imported twice. Nothing is written until :meth:`ImportManager.record_changes`.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

import libcst as cst

from di_migrator.analysis.source_file import SourceFile
from di_migrator.core.scanners import get_full_name, is_docstring, is_future_import, is_import_line
from di_migrator.core.update_recorder import UpdateRecorder


@dataclass
class _ImportedName:
  name: str
  alias: Optional[str] = None

  def render(self) -> str:
    return f"{self.name} as {self.alias}" if self.alias else self.name


@dataclass
class _PendingImports:
  """Names of one file that still need an import statement."""

  modules: Dict[str, List[_ImportedName]] = field(default_factory=dict)
  limit: Optional[int] = None

  def require_before(self, offset: Optional[int]) -> None:
    if offset is not None and (self.limit is None or offset < self.limit):
      self.limit = offset


class ImportManager:
  """
  Collects the imports requested by the transform, per source file.
  """

  def __init__(self, get_update_recorder: Callable[[SourceFile], UpdateRecorder]):
    """
    Args:
        get_update_recorder: Returns the (lazily created) recorder of a file.
    """
    self._get_update_recorder = get_update_recorder
    # Cached identifiers with the offset of the import providing them (None if pending)
    self._identifiers: Dict[Tuple[SourceFile, str, str], Tuple[str, Optional[int]]] = {}
    self._pending: Dict[SourceFile, _PendingImports] = {}
    self._claimed_names: Dict[SourceFile, Set[str]] = {}

  def add_import(self, sf: SourceFile, symbol_name: str, module_name: str, before: Optional[int] = None) -> str:
    """
    Requests a symbol in a file.

    Args:
        sf: The file that needs the symbol.
        symbol_name: The exported name, e.g. 'injectable'.
        module_name: The module exporting it, e.g. 'di'.
        before: Offset of the statement using the symbol; the import must run
            before it. None places no constraint.

    Returns:
        str: The expression referring to the symbol in that file, e.g.
        'injectable', 'injectable_1' or 'di.injectable'.
    """
    key = (sf, symbol_name, module_name)
    cached = self._identifiers.get(key)
    if cached is not None:
      identifier, provided_at = cached
      if provided_at is None:
        self._pending[sf].require_before(before)
        return identifier
      if before is None or provided_at < before:
        return identifier

    existing = _existing_identifier(sf, symbol_name, module_name, before)
    if existing is not None:
      self._identifiers[key] = existing
      return existing[0]

    identifier = self._unique_identifier(sf, symbol_name)
    pending = self._pending.setdefault(sf, _PendingImports())
    pending.modules.setdefault(module_name, []).append(
      _ImportedName(symbol_name, identifier if identifier != symbol_name else None)
    )
    pending.require_before(before)
    self._identifiers[key] = (identifier, None)
    return identifier

  def _unique_identifier(self, sf: SourceFile, symbol_name: str) -> str:
    claimed = self._claimed_names.setdefault(sf, set())
    taken = sf.index.used_names | claimed
    identifier = symbol_name
    counter = 1
    while identifier in taken:
      identifier = f"{symbol_name}_{counter}"
      counter += 1
    claimed.add(identifier)
    return identifier

  def record_changes(self) -> None:
    """
    Queues every requested import on the recorders of the affected files.
    """
    for sf, pending in self._pending.items():
      recorder = self._get_update_recorder(sf)
      new_imports: Dict[str, List[_ImportedName]] = {}
      for module_name, names in pending.modules.items():
        clause = _find_from_clause(sf, module_name, pending.limit)
        if clause is None:
          new_imports[module_name] = names
          continue
        for edit in _clause_edits(sf, clause, names):
          if edit.end is None:
            recorder.add_to_existing_import(edit.start, edit.text)
          else:
            recorder.update_existing_import(edit.start, edit.end, edit.text)

      if new_imports:
        offset, prefix, suffix = _new_import_location(sf, pending.limit)
        for module_name, names in new_imports.items():
          statement = f"from {module_name} import {', '.join(n.render() for n in names)}"
          recorder.add_new_import(offset, f"{prefix}{statement}{suffix}")

    self._pending.clear()


def _top_level_imports(sf: SourceFile, limit: Optional[int]) -> Iterator[cst.CSTNode]:
  """Yields top-level import nodes of statements starting before `limit`."""
  for stmt in sf.module.body:
    if not isinstance(stmt, cst.SimpleStatementLine):
      continue
    if limit is not None and sf.statement_start(stmt) >= limit:
      break
    for small in stmt.body:
      if isinstance(small, (cst.Import, cst.ImportFrom)):
        yield small


def _existing_identifier(
  sf: SourceFile,
  symbol_name: str,
  module_name: str,
  limit: Optional[int],
) -> Optional[Tuple[str, int]]:
  for node in _top_level_imports(sf, limit):
    offset = sf.start_offset(node)
    if isinstance(node, cst.ImportFrom):
      if node.relative or node.module is None or get_full_name(node.module) != module_name:
        continue
      if isinstance(node.names, cst.ImportStar):
        return symbol_name, offset
      for alias in node.names:
        if get_full_name(alias.name) != symbol_name:
          continue
        if alias.asname and isinstance(alias.asname.name, cst.Name):
          return alias.asname.name.value, offset
        return symbol_name, offset
    else:
      for alias in node.names:
        if get_full_name(alias.name) != module_name:
          continue
        if alias.asname and isinstance(alias.asname.name, cst.Name):
          return f"{alias.asname.name.value}.{symbol_name}", offset
        return f"{module_name}.{symbol_name}", offset
  return None


def _find_from_clause(sf: SourceFile, module_name: str, limit: Optional[int]) -> Optional[cst.ImportFrom]:
  for node in _top_level_imports(sf, limit):
    if (
      isinstance(node, cst.ImportFrom)
      and not node.relative
      and node.module is not None
      and not isinstance(node.names, cst.ImportStar)
      and get_full_name(node.module) == module_name
    ):
      return node
  return None


def _render_alias(alias: cst.ImportAlias) -> _ImportedName:
  asname = None
  if alias.asname and isinstance(alias.asname.name, cst.Name):
    asname = alias.asname.name.value
  return _ImportedName(get_full_name(alias.name), asname)


@dataclass
class _ClauseEdit:
  """Replacement of [start, end), or an insertion at start when end is None."""

  start: int
  text: str
  end: Optional[int] = None


def _clause_edits(sf: SourceFile, node: cst.ImportFrom, added: List[_ImportedName]) -> List[_ClauseEdit]:
  """
  Computes the edits adding names to an existing ``from ... import`` clause.

  Single-line lists are rewritten, sorted when the original list was sorted.
  Lists spanning several lines only receive insertions, so their layout and
  comments stay intact.
  """
  aliases = list(node.names)
  existing = [_render_alias(a) for a in aliases]
  names = [n.name for n in existing]
  is_sorted = names == sorted(names)
  start = sf.start_offset(aliases[0])
  end = sf.end_offset(aliases[-1])

  if "\n" not in sf.text[start:end] and "\r" not in sf.text[start:end]:
    merged = existing + added
    if is_sorted:
      merged.sort(key=lambda n: n.name)
    return [_ClauseEdit(start, ", ".join(n.render() for n in merged), end)]

  before_alias: Dict[int, List[_ImportedName]] = {}
  appended: List[_ImportedName] = []
  for name in added:
    position = None
    if is_sorted:
      position = next((i for i, n in enumerate(names) if n > name.name), None)
    if position is None:
      appended.append(name)
    else:
      before_alias.setdefault(position, []).append(name)

  edits = []
  for position, group in sorted(before_alias.items()):
    group.sort(key=lambda n: n.name)
    offset = sf.start_offset(aliases[position])
    indent = sf.line_indentation(offset)
    separator = f",{sf.newline}{indent}" if not indent.strip() else ", "
    edits.append(_ClauseEdit(offset, "".join(f"{n.render()}{separator}" for n in group)))
  if appended:
    if is_sorted:
      appended.sort(key=lambda n: n.name)
    edits.append(_ClauseEdit(end, "".join(f", {n.render()}" for n in appended)))
  return edits


def _new_import_location(sf: SourceFile, limit: Optional[int] = None) -> Tuple[int, str, str]:
  """
  Finds where new import statements go.

  Args:
      sf: The file.
      limit: Offset the statements must precede (None for no constraint).

  Returns:
      (offset, prefix, suffix) to wrap each statement with.
  """
  body = sf.module.body
  newline = sf.newline

  last_import = None
  for stmt in body:
    if limit is not None and sf.statement_start(stmt) >= limit:
      break
    if is_import_line(stmt) and not is_future_import(stmt):
      last_import = stmt
  if last_import is not None:
    offset = sf.next_line_offset(last_import)
    prefix = newline if offset == len(sf.text) and not sf.ends_with_newline else ""
    return offset, prefix, newline

  header = None
  for idx, stmt in enumerate(body):
    if is_docstring(stmt, idx) or is_future_import(stmt):
      header = stmt
    else:
      break
  if header is not None:
    offset = sf.next_line_offset(header)
    prefix = newline
    if offset == len(sf.text) and not sf.ends_with_newline:
      prefix += newline
    return offset, prefix, newline

  if not body:
    return len(sf.text), "", newline
  return sf.statement_start(body[0]), "", newline * 3
