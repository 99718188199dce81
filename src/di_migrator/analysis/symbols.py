"""
Module Symbol Index.

A single LibCST pass over each module records:

1.  **Bindings**: every name bound at module level (classes, imports, simple
    aliases such as ``Alias = Dep``, and other values), in binding order.
2.  **Scopes**: the class and function scopes enclosing each class declaration,
    so that locally defined or shadowed classes resolve by identity.
3.  **Class Records**: one record per ``ClassDef`` reachable from the module, in
    source order.
4.  **Star Imports**: modules imported with ``from module import *``; names
    not bound otherwise may come from them.

Bindings are position-aware. Python evaluates base classes and decorators when
the ``class`` statement runs, so ``from x import A`` followed by ``class A(A)``
refers to the imported ``A``; lookups can therefore be limited to bindings made
before a given order index.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import libcst as cst

from di_migrator.core.scanners import get_full_name


@dataclass(frozen=True)
class Binding:
  """
  A name binding.

  Attributes:
      kind: 'class', 'import', 'alias' or 'other'.
      order: Position of the binding in module traversal order.
      node: The ClassDef for classes, the import statement for imports.
      module: Absolute module path for imports.
      name: Imported member name (None for ``import a.b``).
      expr: Right-hand side for aliases.
  """

  kind: str
  order: int
  node: Optional[cst.CSTNode] = None
  module: Optional[str] = None
  name: Optional[str] = None
  expr: Optional[cst.BaseExpression] = None


class BindingTable:
  """
  Ordered multi-map from names to their successive bindings.
  """

  def __init__(self) -> None:
    self._entries: Dict[str, List[Binding]] = {}

  def add(self, name: str, binding: Binding) -> None:
    """
    Registers a binding.

    Args:
        name: The bound identifier.
        binding: The binding record.
    """
    self._entries.setdefault(name, []).append(binding)

  def lookup(self, name: str, before: Optional[int] = None) -> Optional[Binding]:
    """
    Finds the binding in effect for a name.

    Args:
        name: Identifier to resolve.
        before: If given, only bindings with a smaller order are considered.

    Returns:
        The latest matching Binding, or None.
    """
    candidates = self._entries.get(name, [])
    if before is not None:
      candidates = [b for b in candidates if b.order < before]
    return candidates[-1] if candidates else None

  def names(self) -> Set[str]:
    """Returns all bound names."""
    return set(self._entries)


@dataclass
class Scope:
  """
  A class body or function scope nested inside a module.
  """

  kind: str
  name: str
  bindings: BindingTable = field(default_factory=BindingTable)


@dataclass
class ClassRecord:
  """
  Location data for one class declaration.

  Attributes:
      node: The ClassDef.
      order: Traversal order index of the class statement.
      enclosing: Scopes around the declaration, innermost first.
      body_scope: The scope of the class body.
      qualname: Dotted name within the module (``Outer.<locals>.Inner`` style).
  """

  node: cst.ClassDef
  order: int
  enclosing: Tuple[Scope, ...]
  body_scope: Scope
  qualname: str

  @property
  def top_level(self) -> bool:
    """True if declared at module level (including inside module-level if/try blocks)."""
    return not self.enclosing

  def definition_scopes(self) -> Tuple[Scope, ...]:
    """
    Scopes visible where the class statement executes (bases and decorators).

    The immediately enclosing scope is visible whatever its kind; further out,
    only function scopes are.
    """
    if not self.enclosing:
      return ()
    outer = tuple(s for s in self.enclosing[1:] if s.kind == "function")
    return (self.enclosing[0],) + outer

  def body_scopes(self) -> Tuple[Scope, ...]:
    """Scopes visible from inside the class body (method annotations)."""
    return (self.body_scope,) + tuple(s for s in self.enclosing if s.kind == "function")


@dataclass
class ModuleIndex:
  """
  The result of indexing one module.
  """

  bindings: BindingTable
  classes: List[ClassRecord]
  used_names: Set[str]
  star_imports: List[Tuple[int, str]] = field(default_factory=list)

  def star_modules(self, before: Optional[int] = None) -> List[str]:
    """
    Modules imported with ``from module import *``, latest first.

    Args:
        before: If given, only imports with a smaller order are considered.
    """
    return [m for order, m in reversed(self.star_imports) if before is None or order < before]


def resolve_relative_module(package: str, level: int, module: Optional[str]) -> Optional[str]:
  """
  Computes the absolute module path for a relative import.

  Args:
      package: The package of the importing module ('' for top-level modules).
      level: Number of leading dots.
      module: The dotted module after the dots, if any.

  Returns:
      The absolute module path, or None if the import escapes the top level.
  """
  parts = package.split(".") if package else []
  if level - 1 > len(parts):
    return None
  base = parts[: len(parts) - (level - 1)]
  if module:
    base = base + module.split(".")
  if not base:
    return None
  return ".".join(base)


class ModuleIndexer(cst.CSTVisitor):
  """
  Builds a :class:`ModuleIndex` for one module.
  """

  def __init__(self, package: str):
    """
    Args:
        package: The package containing the module, used for relative imports.
    """
    self.package = package
    self.bindings = BindingTable()
    self.classes: List[ClassRecord] = []
    self.used_names: Set[str] = set()
    self.star_imports: List[Tuple[int, str]] = []
    self._scopes: List[Scope] = []
    self._qual: List[str] = []
    self._order = 0

  def index(self) -> ModuleIndex:
    """Returns the collected index."""
    return ModuleIndex(
      bindings=self.bindings,
      classes=self.classes,
      used_names=self.used_names,
      star_imports=self.star_imports,
    )

  def _next_order(self) -> int:
    self._order += 1
    return self._order

  def _bind(self, name: str, binding: Binding) -> None:
    if self._scopes:
      self._scopes[-1].bindings.add(name, binding)
    else:
      self.bindings.add(name, binding)

  # --- Scoping ---

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    order = self._next_order()
    name = node.name.value
    body_scope = Scope(kind="class", name=name)
    qualname = ".".join(self._qual + [name])
    record = ClassRecord(
      node=node,
      order=order,
      enclosing=tuple(reversed(self._scopes)),
      body_scope=body_scope,
      qualname=qualname,
    )
    self.classes.append(record)
    self._bind(name, Binding(kind="class", order=order, node=node))
    self._scopes.append(body_scope)
    self._qual.append(name)

  def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
    self._scopes.pop()
    self._qual.pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    name = node.name.value
    self._bind(name, Binding(kind="other", order=self._next_order()))
    self._scopes.append(Scope(kind="function", name=name))
    self._qual.extend([name, "<locals>"])

  def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
    self._scopes.pop()
    del self._qual[-2:]

  # --- Bindings ---

  def visit_Import(self, node: cst.Import) -> None:
    # Imports inside functions or class bodies do not affect module resolution
    if self._scopes:
      return
    for alias in node.names:
      full_name = get_full_name(alias.name)
      if alias.asname:
        target = alias.asname.name
        if isinstance(target, cst.Name):
          self._bind(target.value, Binding(kind="import", order=self._next_order(), node=node, module=full_name))
      else:
        root = full_name.split(".")[0]
        self._bind(root, Binding(kind="import", order=self._next_order(), node=node, module=root))

  def visit_ImportFrom(self, node: cst.ImportFrom) -> None:
    if self._scopes:
      return
    module_name = get_full_name(node.module) if node.module else None
    if node.relative:
      module_name = resolve_relative_module(self.package, len(node.relative), module_name)
    if not module_name:
      return
    if isinstance(node.names, cst.ImportStar):
      self.star_imports.append((self._next_order(), module_name))
      return
    for alias in node.names:
      imported = get_full_name(alias.name)
      bound = imported
      if alias.asname and isinstance(alias.asname.name, cst.Name):
        bound = alias.asname.name.value
      self._bind(
        bound,
        Binding(kind="import", order=self._next_order(), node=node, module=module_name, name=imported),
      )

  def visit_Assign(self, node: cst.Assign) -> None:
    value = node.value
    for target in node.targets:
      self._bind_target(target.target, value)

  def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
    if node.value is not None:
      self._bind_target(node.target, node.value)

  def _bind_target(self, target: cst.BaseExpression, value: Optional[cst.BaseExpression]) -> None:
    if not isinstance(target, cst.Name):
      return
    if not self._scopes and isinstance(value, (cst.Name, cst.Attribute)):
      self._bind(target.value, Binding(kind="alias", order=self._next_order(), expr=value))
    else:
      self._bind(target.value, Binding(kind="other", order=self._next_order()))

  def visit_Name(self, node: cst.Name) -> None:
    self.used_names.add(node.value)


def package_of(module_name: str, is_package: bool) -> str:
  """
  Returns the package that relative imports of a module are resolved against.

  Args:
      module_name: Dotted module name.
      is_package: True for ``__init__.py`` modules.

  Returns:
      str: The package path ('' for top-level modules).
  """
  if is_package:
    return module_name
  return module_name.rpartition(".")[0]


