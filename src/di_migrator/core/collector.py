"""
Declaration Collector.

Walks every source file once and classifies each class declaration by its
dependency-injection shape:

1.  **Decorated Directive**: carries a directive/component-style decorator.
2.  **Decorated Provider**: carries a provider-style decorator.
3.  **Undecorated Declaration**: carries neither, but its own constructor takes
    parameters or it extends a base class that requires DI.
4.  Anything else is not collected.

The decoration state is computed once here as a closed variant and consumed by
the transform; nothing downstream re-inspects decorator shapes. Collected
classes are keyed by node identity, so unexported and shadowed classes with
equal names stay distinct.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import libcst as cst

from di_migrator.analysis.checker import DecoratorRef, ResolvedParam, Symbol, SymbolKind, SymbolOrigin, TypeChecker
from di_migrator.analysis.source_file import SourceFile
from di_migrator.config import ProjectConfig


class DecorationState(str, Enum):
  """DI decoration state of a class."""

  UNDECORATED = "undecorated"
  DIRECTIVE = "directive"
  PROVIDER = "provider"


@dataclass(frozen=True)
class BaseRef:
  """
  A base class reference.

  Attributes:
      arg: The base expression in the class statement.
      symbol: The resolved base.
      requires_di: True if the base needs constructor injection or cannot be analyzed.
  """

  arg: cst.Arg
  symbol: Symbol
  requires_di: bool

  @property
  def node(self) -> Optional[cst.ClassDef]:
    """The base declaration for project classes (identity lookup key)."""
    return self.symbol.node

  @property
  def is_analyzable(self) -> bool:
    """True if the base is a class declared in the program."""
    return self.symbol.is_project_class


@dataclass
class ClassInfo:
  """
  A classified class declaration.

  Attributes:
      node: The ClassDef (owned by the syntax tree).
      source_file: Declaring module.
      name: Qualified name within the module.
      state: Decoration state.
      decorator: The recognised DI decorator, if any.
      constructor_params: Own ``__init__`` parameters, None without own constructor.
      bases: Base references in declaration order.
  """

  node: cst.ClassDef
  source_file: SourceFile
  name: str
  state: DecorationState
  decorator: Optional[DecoratorRef] = None
  constructor_params: Optional[List[ResolvedParam]] = None
  bases: List[BaseRef] = field(default_factory=list)

  @property
  def decorator_args(self) -> Tuple[cst.Arg, ...]:
    return self.decorator.args if self.decorator else ()

  @property
  def has_constructor(self) -> bool:
    return self.constructor_params is not None

  @property
  def di_bases(self) -> List[BaseRef]:
    """Bases that require DI."""
    return [b for b in self.bases if b.requires_di]

  @property
  def base(self) -> Optional[BaseRef]:
    """The immediate base: the first DI-relevant base, else the first base."""
    di_bases = self.di_bases
    if di_bases:
      return di_bases[0]
    return self.bases[0] if self.bases else None

  @property
  def unresolved_params(self) -> List[ResolvedParam]:
    return [p for p in self.constructor_params or () if p.is_unresolved]

  @property
  def injected_params(self) -> List[ResolvedParam]:
    return [p for p in self.constructor_params or () if p.needs_injection]


@dataclass
class DeclarationSets:
  """
  Disjoint collections of classified classes, in collection order.
  """

  decorated_directives: List[ClassInfo] = field(default_factory=list)
  decorated_providers: List[ClassInfo] = field(default_factory=list)
  undecorated_declarations: List[ClassInfo] = field(default_factory=list)


class DeclarationCollector:
  """
  Classifies class declarations of a program.

  Created fresh per project; memoised DI requirements never outlive it.
  """

  def __init__(self, checker: TypeChecker, config: ProjectConfig):
    """
    Args:
        checker: The program's type checker.
        config: Project config naming the DI decorators.
    """
    self.checker = checker
    self.config = config
    self.declarations = DeclarationSets()
    self._infos: Dict[cst.ClassDef, ClassInfo] = {}
    self._requires_di: Dict[cst.ClassDef, bool] = {}
    self._in_progress: set = set()
    self._directive_names = set(config.directive_names)
    self._provider_names = set(config.provider_names)

  @property
  def decorated_directives(self) -> List[ClassInfo]:
    return self.declarations.decorated_directives

  @property
  def decorated_providers(self) -> List[ClassInfo]:
    return self.declarations.decorated_providers

  @property
  def undecorated_declarations(self) -> List[ClassInfo]:
    return self.declarations.undecorated_declarations

  def visit_source_file(self, sf: SourceFile) -> None:
    """
    Classifies every class declared in a module, in source order.

    Args:
        sf: The module to visit.
    """
    for record in sf.index.classes:
      self._visit_class(record.node)

  def info_for(self, node: cst.ClassDef) -> Optional[ClassInfo]:
    """
    Looks up a collected class by identity.

    Args:
        node: A class declaration.

    Returns:
        Its ClassInfo, or None if the class was not collected.
    """
    return self._infos.get(node)

  def _visit_class(self, node: cst.ClassDef) -> None:
    if node in self._infos:
      return

    decorator, state = self._classify_decorators(node)
    params = self.checker.constructor_parameters(node)
    bases = self.base_refs(node)

    if state == DecorationState.UNDECORATED:
      has_params = bool(params)
      if not has_params and not any(b.requires_di for b in bases):
        return

    info = ClassInfo(
      node=node,
      source_file=self.checker.source_file_of(node),
      name=self.checker.record_of(node).qualname,
      state=state,
      decorator=decorator,
      constructor_params=params,
      bases=bases,
    )
    self._infos[node] = info
    if state == DecorationState.DIRECTIVE:
      self.declarations.decorated_directives.append(info)
    elif state == DecorationState.PROVIDER:
      self.declarations.decorated_providers.append(info)
    else:
      self.declarations.undecorated_declarations.append(info)

  def _classify_decorators(self, node: cst.ClassDef) -> Tuple[Optional[DecoratorRef], DecorationState]:
    refs = self.checker.decorators(node)
    for ref in refs:
      if ref.qualified_name in self._directive_names:
        return ref, DecorationState.DIRECTIVE
    for ref in refs:
      if ref.qualified_name in self._provider_names:
        return ref, DecorationState.PROVIDER
    return None, DecorationState.UNDECORATED

  def requires_di(self, node: cst.ClassDef) -> bool:
    """
    Checks whether constructing a project class needs injected dependencies.

    True if its own constructor takes parameters, or it has no own constructor
    and any base requires DI. Inheritance cycles resolve to False.

    Args:
        node: A project class declaration.

    Returns:
        bool: The memoised answer.
    """
    if node in self._requires_di:
      return self._requires_di[node]
    if node in self._in_progress:
      return False

    self._in_progress.add(node)
    try:
      params = self.checker.constructor_parameters(node)
      if params is not None:
        result = bool(params)
      else:
        result = any(self._base_requires_di(symbol) for _, symbol in self.checker.base_classes(node))
    finally:
      self._in_progress.discard(node)

    self._requires_di[node] = result
    return result

  def base_refs(self, node: cst.ClassDef) -> List[BaseRef]:
    """
    Resolves the bases of a project class and their DI requirements.

    Args:
        node: A project class declaration.

    Returns:
        List[BaseRef]: One reference per base, in declaration order.
    """
    info = self._infos.get(node)
    if info is not None:
      return info.bases
    return [BaseRef(arg, symbol, self._base_requires_di(symbol)) for arg, symbol in self.checker.base_classes(node)]

  def state_of(self, node: cst.ClassDef) -> DecorationState:
    """Returns the decoration state of any project class."""
    info = self._infos.get(node)
    if info is not None:
      return info.state
    return self._classify_decorators(node)[1]

  def _base_requires_di(self, symbol: Symbol) -> bool:
    if symbol.is_project_class:
      return self.requires_di(symbol.node)
    if symbol.kind == SymbolKind.CLASS:
      if symbol.origin in (SymbolOrigin.BUILTIN, SymbolOrigin.STDLIB, SymbolOrigin.TYPING):
        return False
      if symbol.origin == SymbolOrigin.EXTERNAL:
        return not self.config.is_ignored_base(symbol.qualified_name)
    # Unresolvable names, modules and computed values cannot be analyzed
    return True
