"""
Undecorated Classes Transform.

Consumes the classified declarations of a project and decides, per class,
whether to add DI metadata or to report a failure. Three passes run in a fixed
order over the whole project; decorations and imports scheduled by an earlier
pass are visible to later ones:

1.  **Decorated directives**: validated, then every undecorated base on the
    constructor chain gets the abstract directive decorator.
2.  **Decorated providers**: validated only.
3.  **Undecorated declarations**: decorated with the injectable decorator when
    their effective constructor can be injected, otherwise reported.

The transform only queues edits; recorders are committed by the caller once
every pass has run.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set

import libcst as cst

from di_migrator.analysis.checker import ResolvedParam, TypeChecker
from di_migrator.config import ProjectConfig
from di_migrator.core.collector import BaseRef, ClassInfo, DeclarationCollector, DecorationState
from di_migrator.core.import_manager import ImportManager
from di_migrator.core.scanners import capture_node_source
from di_migrator.core.update_recorder import UpdateRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransformFailure:
  """
  A class that could not be migrated safely.

  Attributes:
      node: The class declaration.
      message: What needs manual attention.
  """

  node: cst.ClassDef
  message: str


@dataclass
class _ConstructorChain:
  """Result of following single DI-relevant bases to the constructor owner."""

  owner: Optional[cst.ClassDef] = None
  params: Optional[List[ResolvedParam]] = None
  bases: Sequence[cst.ClassDef] = ()
  error: Optional[str] = None


class UndecoratedClassesTransform:
  """
  Adds missing DI decorators to the classes of one project.
  """

  def __init__(
    self,
    checker: TypeChecker,
    config: ProjectConfig,
    collector: DeclarationCollector,
    get_update_recorder: Callable,
    import_manager: ImportManager,
  ):
    """
    Args:
        checker: The program's type checker.
        config: Project config naming the framework and decorators.
        collector: The collector that classified the project's classes.
        get_update_recorder: Returns the recorder of a source file.
        import_manager: Shared import manager for the project.
    """
    self.checker = checker
    self.config = config
    self.collector = collector
    self._get_update_recorder: Callable[..., UpdateRecorder] = get_update_recorder
    self.import_manager = import_manager
    self._decorated: Set[cst.ClassDef] = set()

  def migrate_decorated_directives(self, directives: Sequence[ClassInfo]) -> List[TransformFailure]:
    """
    Validates directives and decorates the undecorated bases they inherit a constructor from.

    Args:
        directives: Decorated directives in collection order.

    Returns:
        List[TransformFailure]: Classes that need manual attention.
    """
    failures = []
    for info in directives:
      chain = self._constructor_chain(info.node)
      failure = self._check_consistency(info, chain)
      if failure is not None:
        failures.append(failure)
        continue
      for base in chain.bases:
        if self.collector.state_of(base) != DecorationState.UNDECORATED or base in self._decorated:
          break
        self._decorate(base, self.config.base_decorator)
    return failures

  def migrate_decorated_providers(self, providers: Sequence[ClassInfo]) -> List[TransformFailure]:
    """
    Validates providers. Provider decorators confer injectability already.

    Args:
        providers: Decorated providers in collection order.

    Returns:
        List[TransformFailure]: Classes with inconsistent DI metadata.
    """
    failures = []
    for info in providers:
      failure = self._check_consistency(info, self._constructor_chain(info.node))
      if failure is not None:
        failures.append(failure)
    return failures

  def migrate_undecorated_declarations(self, declarations: Sequence[ClassInfo]) -> List[TransformFailure]:
    """
    Adds the injectable decorator to classes whose constructor needs injection.

    Args:
        declarations: Undecorated declarations in collection order.

    Returns:
        List[TransformFailure]: Classes that could not be decorated.
    """
    failures = []
    for info in declarations:
      if info.node in self._decorated:
        continue
      chain = self._constructor_chain(info.node)
      if chain.error is not None:
        failures.append(TransformFailure(info.node, chain.error))
        continue
      if chain.owner is None:
        continue

      unresolved = [p for p in chain.params or () if p.is_unresolved]
      if unresolved:
        failures.append(TransformFailure(info.node, self._unresolved_message(info.node, chain.owner, unresolved)))
        continue

      if chain.owner is info.node:
        comment = "Made injectable because its constructor takes dependencies."
      else:
        comment = f"Made injectable because it inherits a constructor with dependencies from '{self._name(chain.owner)}'."
      self._decorate(info.node, self.config.injectable_decorator, comment)
    return failures

  def record_changes(self) -> None:
    """Queues the requested imports on the file recorders."""
    self.import_manager.record_changes()

  # --- Decisions ---

  def _constructor_chain(self, node: cst.ClassDef) -> _ConstructorChain:
    """
    Finds the class owning the effective constructor of `node`.

    Follows the single DI-relevant base of each class without its own
    constructor. Several DI-relevant bases, or a base that cannot be analyzed,
    end the walk with an error.
    """
    bases: List[cst.ClassDef] = []
    seen = set()
    current = node
    while current not in seen:
      seen.add(current)
      params = self.checker.constructor_parameters(current)
      if params is not None:
        return _ConstructorChain(current, params, bases)

      di_bases = [b for b in self.collector.base_refs(current) if b.requires_di]
      if not di_bases:
        return _ConstructorChain(bases=bases)
      if len(di_bases) > 1:
        names = ", ".join(f"'{self._base_name(b)}'" for b in di_bases)
        return _ConstructorChain(
          bases=bases,
          error=(
            f"Class '{self._name(node)}' inherits from multiple classes that require dependency injection "
            f"({names}). Declare an explicit constructor."
          ),
        )

      base = di_bases[0]
      if not base.is_analyzable:
        return _ConstructorChain(
          bases=bases,
          error=(
            f"Class '{self._name(node)}' inherits its constructor from '{self._base_name(base)}' "
            "which cannot be analyzed. Declare an explicit constructor or list the base in 'ignored_bases'."
          ),
        )
      bases.append(base.node)
      current = base.node
    return _ConstructorChain(bases=bases)

  def _check_consistency(self, info: ClassInfo, chain: _ConstructorChain) -> Optional[TransformFailure]:
    decorator = info.decorator
    if decorator is not None and not decorator.called:
      code = info.source_file.code_for(decorator.node.decorator)
      return TransformFailure(
        info.node,
        f"Class '{info.name}' uses '@{code}' without calling it. Use '@{code}()' instead.",
      )
    if chain.error is not None:
      return TransformFailure(info.node, chain.error)
    if chain.owner is None:
      return None

    injected = [p for p in chain.params or () if p.needs_injection]
    deps = _deps_argument(info.decorator_args)
    if deps is not None:
      if isinstance(deps, (cst.List, cst.Tuple)) and not any(isinstance(e, cst.StarredElement) for e in deps.elements):
        if len(deps.elements) != len(injected):
          return TransformFailure(
            info.node,
            f"Class '{info.name}' declares {len(deps.elements)} dependencies in 'deps' "
            f"but its constructor takes {len(injected)} injected parameters.",
          )
      return None

    unresolved = [p for p in injected if p.is_unresolved]
    if unresolved:
      return TransformFailure(info.node, self._unresolved_message(info.node, chain.owner, unresolved))
    return None

  def _unresolved_message(self, node: cst.ClassDef, owner: cst.ClassDef, params: Sequence[ResolvedParam]) -> str:
    reasons = "; ".join(f"parameter '{p.name}' {p.reason}" for p in params)
    if owner is node:
      return f"Class '{self._name(node)}' cannot be injected: {reasons}."
    return f"Class '{self._name(node)}' inherits a constructor from '{self._name(owner)}' that cannot be injected: {reasons}."

  # --- Edits ---

  def _decorate(self, node: cst.ClassDef, decorator_name: str, comment: Optional[str] = None) -> None:
    sf = self.checker.source_file_of(node)
    recorder = self._get_update_recorder(sf)
    identifier = self.import_manager.add_import(sf, decorator_name, self.config.framework, sf.statement_start(node))
    if comment:
      recorder.add_class_comment(node, comment)
    recorder.add_class_decorator(node, f"{identifier}()")
    self._decorated.add(node)
    logger.debug("Decorating %s in %s with %s()", self._name(node), sf.path, identifier)

  def _name(self, node: cst.ClassDef) -> str:
    return self.checker.record_of(node).qualname

  def _base_name(self, base: BaseRef) -> str:
    return base.symbol.qualified_name or capture_node_source(base.arg.value)


def _deps_argument(args: Sequence[cst.Arg]) -> Optional[cst.BaseExpression]:
  for arg in args:
    if arg.keyword is not None and arg.keyword.value == "deps":
      return arg.value
  return None
