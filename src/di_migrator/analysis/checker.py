"""
Project-wide Name and Type Resolution.

The :class:`TypeChecker` answers the semantic questions the migration asks about
class declarations, across all modules of a program:

1.  **Name Resolution**: identifiers and dotted attributes are resolved through
    local class scopes, module bindings (classes, imports including relative
    imports and re-exports, simple aliases), builtins, and external modules.
2.  **Origins**: every resolved symbol records whether it comes from the project,
    builtins, the standard library, the typing family, or an external package.
3.  **Constructors**: a class's own ``__init__`` and its parameters, each resolved
    to an injectable class symbol or marked Unknown with a reason.
4.  **Decorators & Bases**: qualified names of decorators and resolved base classes.

Resolution never raises for unknown code; unresolvable names yield :data:`UNKNOWN`.
"""

import builtins
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Sequence, Set, Tuple

import libcst as cst

from di_migrator.analysis.source_file import SourceFile
from di_migrator.analysis.symbols import Binding, ClassRecord, Scope

TYPING_MODULES = ("typing", "typing_extensions", "collections.abc", "types")
STRUCTURAL_TYPES = {"Protocol", "TypedDict"}
_BUILTIN_NAMES = frozenset(dir(builtins)) | {"None", "True", "False"}
_STDLIB_MODULES = frozenset(sys.stdlib_module_names)


class SymbolKind(str, Enum):
  """What a resolved name refers to."""

  CLASS = "class"
  MODULE = "module"
  VALUE = "value"
  UNKNOWN = "unknown"


class SymbolOrigin(str, Enum):
  """Where a resolved name is defined."""

  PROJECT = "project"
  BUILTIN = "builtin"
  STDLIB = "stdlib"
  TYPING = "typing"
  EXTERNAL = "external"


@dataclass(frozen=True)
class Symbol:
  """
  A resolved name.

  Attributes:
      kind: Class, module, other value, or unknown.
      origin: Defining location category (None for unknown symbols).
      qualified_name: Dotted name, e.g. 'app.services.Dep'.
      node: The ClassDef for project classes.
  """

  kind: SymbolKind
  origin: Optional[SymbolOrigin] = None
  qualified_name: str = ""
  node: Optional[cst.ClassDef] = None

  @property
  def is_project_class(self) -> bool:
    return self.kind == SymbolKind.CLASS and self.node is not None


UNKNOWN = Symbol(SymbolKind.UNKNOWN)


@dataclass(frozen=True)
class ResolvedParam:
  """
  A constructor parameter and the type it resolves to.

  Attributes:
      name: Parameter name.
      node: The Param node.
      symbol: The injectable class the annotation refers to, or None (Unknown).
      reason: Why the parameter could not be resolved (None when resolved or skipped).
      has_default: True if the parameter has a default value and needs no injection.
  """

  name: str
  node: cst.Param
  symbol: Optional[Symbol]
  reason: Optional[str] = None
  has_default: bool = False

  @property
  def needs_injection(self) -> bool:
    return not self.has_default

  @property
  def is_unresolved(self) -> bool:
    """True if the parameter needs injection but has no injectable type."""
    return self.needs_injection and self.symbol is None


@dataclass(frozen=True)
class DecoratorRef:
  """
  A decorator applied to a class.

  Attributes:
      node: The Decorator node.
      qualified_name: Resolved dotted name of the decorator callable ('' if unknown).
      called: True for ``@name(...)``, False for bare ``@name``.
      args: Call arguments (empty when not called).
  """

  node: cst.Decorator
  qualified_name: str
  called: bool
  args: Tuple[cst.Arg, ...] = ()


class _Context(NamedTuple):
  """Lookup context: local scopes (innermost first) and binding order limits."""

  scopes: Tuple[Scope, ...] = ()
  before: Optional[int] = None
  module_before: Optional[int] = None


class TypeChecker:
  """
  Resolves names and class metadata across the modules of one program.
  """

  def __init__(self, source_files: Sequence[SourceFile]):
    """
    Indexes the given modules.

    Args:
        source_files: All successfully parsed modules of the program.
    """
    self.source_files = list(source_files)
    self._modules: Dict[str, SourceFile] = {}
    self._packages: Set[str] = set()
    self._records: Dict[cst.ClassDef, Tuple[SourceFile, ClassRecord]] = {}

    for sf in self.source_files:
      self._modules.setdefault(sf.module_name, sf)
      parts = sf.module_name.split(".")
      for i in range(1, len(parts)):
        self._packages.add(".".join(parts[:i]))
      for record in sf.index.classes:
        self._records[record.node] = (sf, record)

  # --- Lookup tables ---

  def source_file_of(self, node: cst.ClassDef) -> SourceFile:
    """
    Returns the module declaring a class.

    Raises:
        KeyError: If the node is not part of this program.
    """
    return self._records[node][0]

  def record_of(self, node: cst.ClassDef) -> ClassRecord:
    """Returns the scope record of a class declaration."""
    return self._records[node][1]

  def is_project_module(self, module_name: str) -> bool:
    return module_name in self._modules or module_name in self._packages

  def origin_of_module(self, module_name: str) -> SymbolOrigin:
    """
    Classifies a module path.

    Args:
        module_name: Absolute dotted module path.

    Returns:
        SymbolOrigin: PROJECT, TYPING, BUILTIN, STDLIB or EXTERNAL.
    """
    if self.is_project_module(module_name):
      return SymbolOrigin.PROJECT
    for typing_mod in TYPING_MODULES:
      if module_name == typing_mod or module_name.startswith(typing_mod + "."):
        return SymbolOrigin.TYPING
    if module_name == "builtins":
      return SymbolOrigin.BUILTIN
    if module_name.split(".")[0] in _STDLIB_MODULES:
      return SymbolOrigin.STDLIB
    return SymbolOrigin.EXTERNAL

  # --- Resolution ---

  def definition_context(self, node: cst.ClassDef) -> _Context:
    """Lookup context for a class's bases and decorators."""
    record = self.record_of(node)
    return _Context(
      scopes=record.definition_scopes(),
      before=record.order,
      module_before=record.order if record.top_level else None,
    )

  def body_context(self, node: cst.ClassDef) -> _Context:
    """Lookup context for annotations inside a class body."""
    return _Context(scopes=self.record_of(node).body_scopes())

  def resolve_name(
    self,
    sf: SourceFile,
    name: str,
    context: Optional[_Context] = None,
    _seen: FrozenSet[Tuple[str, str]] = frozenset(),
  ) -> Symbol:
    """
    Resolves an identifier as seen from a module and local scopes.

    Args:
        sf: The module the name appears in.
        name: The identifier.
        context: Local scopes and order limits (module level if omitted).

    Returns:
        Symbol: The resolved symbol, or UNKNOWN.
    """
    ctx = context or _Context()
    for scope in ctx.scopes:
      binding = scope.bindings.lookup(name, before=ctx.before)
      if binding is None:
        continue
      if binding.kind == "class":
        return self._class_symbol(binding.node)
      return Symbol(SymbolKind.VALUE, SymbolOrigin.PROJECT, name)

    binding = sf.index.bindings.lookup(name, before=ctx.module_before)
    if binding is not None:
      return self._symbol_for_binding(sf, name, binding, _seen)

    if name in _BUILTIN_NAMES:
      return Symbol(SymbolKind.CLASS, SymbolOrigin.BUILTIN, f"builtins.{name}")

    for module in sf.index.star_modules(before=ctx.module_before):
      if self.is_project_module(module):
        symbol = self.resolve_export(module, name, _seen)
        if symbol.kind != SymbolKind.UNKNOWN:
          return symbol
        continue
      # Names of other modules cannot be listed; the star import provides any of them
      return Symbol(SymbolKind.CLASS, self.origin_of_module(module), f"{module}.{name}")
    return UNKNOWN

  def resolve_expression(
    self,
    sf: SourceFile,
    expr: cst.BaseExpression,
    context: Optional[_Context] = None,
    _seen: FrozenSet[Tuple[str, str]] = frozenset(),
  ) -> Symbol:
    """
    Resolves a Name, dotted Attribute, or string forward reference.

    Args:
        sf: The module the expression appears in.
        expr: The expression.
        context: Local scopes and order limits.

    Returns:
        Symbol: The resolved symbol, or UNKNOWN.
    """
    if isinstance(expr, (cst.SimpleString, cst.ConcatenatedString)):
      parsed = _parse_forward_ref(expr)
      if parsed is None:
        return UNKNOWN
      return self.resolve_expression(sf, parsed, context, _seen)

    if isinstance(expr, cst.Name):
      return self.resolve_name(sf, expr.value, context, _seen)

    if isinstance(expr, cst.Attribute):
      owner = self.resolve_expression(sf, expr.value, context, _seen)
      attr = expr.attr.value
      if owner.kind == SymbolKind.MODULE:
        if owner.origin == SymbolOrigin.PROJECT:
          return self.resolve_export(owner.qualified_name, attr, _seen)
        return Symbol(SymbolKind.CLASS, owner.origin, f"{owner.qualified_name}.{attr}")
      if owner.kind == SymbolKind.CLASS:
        if owner.node is not None:
          binding = self.record_of(owner.node).body_scope.bindings.lookup(attr)
          if binding is not None and binding.kind == "class":
            return self._class_symbol(binding.node)
          return UNKNOWN
        return Symbol(SymbolKind.CLASS, owner.origin, f"{owner.qualified_name}.{attr}")
      return UNKNOWN

    return UNKNOWN

  def resolve_export(
    self,
    module_name: str,
    name: str,
    _seen: FrozenSet[Tuple[str, str]] = frozenset(),
  ) -> Symbol:
    """
    Resolves a name exported by a project module, following re-exports.

    Args:
        module_name: The project module.
        name: The exported name.

    Returns:
        Symbol: The resolved symbol, a submodule, or UNKNOWN.
    """
    key = (module_name, name)
    if key in _seen:
      return UNKNOWN
    seen = _seen | {key}

    sf = self._modules.get(module_name)
    if sf is not None:
      binding = sf.index.bindings.lookup(name)
      if binding is not None:
        return self._symbol_for_binding(sf, name, binding, seen)

    submodule = f"{module_name}.{name}"
    if self.is_project_module(submodule):
      return Symbol(SymbolKind.MODULE, SymbolOrigin.PROJECT, submodule)
    return UNKNOWN

  def _symbol_for_binding(
    self,
    sf: SourceFile,
    name: str,
    binding: Binding,
    seen: FrozenSet[Tuple[str, str]],
  ) -> Symbol:
    if binding.kind == "class":
      return self._class_symbol(binding.node)

    if binding.kind == "import":
      module = binding.module or ""
      if binding.name is None:
        return Symbol(SymbolKind.MODULE, self.origin_of_module(module), module)
      if self.is_project_module(module):
        return self.resolve_export(module, binding.name, seen)
      return Symbol(SymbolKind.CLASS, self.origin_of_module(module), f"{module}.{binding.name}")

    if binding.kind == "alias" and binding.expr is not None:
      key = (sf.module_name, name)
      if key in seen:
        return UNKNOWN
      return self.resolve_expression(sf, binding.expr, _Context(module_before=binding.order), seen | {key})

    return Symbol(SymbolKind.VALUE, SymbolOrigin.PROJECT, f"{sf.module_name}.{name}")

  def _class_symbol(self, node: cst.ClassDef) -> Symbol:
    sf, record = self._records[node]
    return Symbol(SymbolKind.CLASS, SymbolOrigin.PROJECT, f"{sf.module_name}.{record.qualname}", node)

  # --- Class metadata ---

  def base_classes(self, node: cst.ClassDef) -> List[Tuple[cst.Arg, Symbol]]:
    """
    Resolves the positional bases of a class.

    Subscripted bases such as ``Generic[T]`` resolve through their value.

    Args:
        node: The class declaration.

    Returns:
        List of (base argument, resolved symbol) pairs in declaration order.
    """
    sf = self.source_file_of(node)
    ctx = self.definition_context(node)
    results = []
    for arg in node.bases:
      if arg.star:
        results.append((arg, UNKNOWN))
        continue
      expr = arg.value
      if isinstance(expr, cst.Subscript):
        expr = expr.value
      results.append((arg, self.resolve_expression(sf, expr, ctx)))
    return results

  def decorators(self, node: cst.ClassDef) -> List[DecoratorRef]:
    """
    Resolves the decorators applied to a class.

    Args:
        node: The class declaration.

    Returns:
        List[DecoratorRef]: One entry per decorator, in source order.
    """
    sf = self.source_file_of(node)
    ctx = self.definition_context(node)
    refs = []
    for decorator in node.decorators:
      expr = decorator.decorator
      called = isinstance(expr, cst.Call)
      args: Tuple[cst.Arg, ...] = ()
      if called:
        args = tuple(expr.args)
        expr = expr.func
      symbol = self.resolve_expression(sf, expr, ctx)
      refs.append(DecoratorRef(decorator, symbol.qualified_name, called, args))
    return refs

  def is_structural(self, node: cst.ClassDef) -> bool:
    """
    Checks whether a class is a structural type (Protocol or TypedDict).

    Args:
        node: The class declaration.

    Returns:
        bool: True if a direct base is ``typing.Protocol`` or ``typing.TypedDict``.
    """
    for _, symbol in self.base_classes(node):
      if symbol.origin == SymbolOrigin.TYPING and symbol.qualified_name.rsplit(".", 1)[-1] in STRUCTURAL_TYPES:
        return True
    return False

  def get_constructor(self, node: cst.ClassDef) -> Optional[cst.FunctionDef]:
    """
    Finds the class's own ``__init__``.

    Args:
        node: The class declaration.

    Returns:
        The last ``__init__`` defined directly in the class body, or None.
    """
    ctor = None
    if isinstance(node.body, cst.IndentedBlock):
      for stmt in node.body.body:
        if isinstance(stmt, cst.FunctionDef) and stmt.name.value == "__init__":
          ctor = stmt
    return ctor

  def constructor_parameters(self, node: cst.ClassDef) -> Optional[List[ResolvedParam]]:
    """
    Resolves the parameters of the class's own constructor.

    The implicit ``self`` parameter is skipped.

    Args:
        node: The class declaration.

    Returns:
        The resolved parameters, or None if the class has no own constructor.
    """
    ctor = self.get_constructor(node)
    if ctor is None:
      return None

    sf = self.source_file_of(node)
    ctx = self.body_context(node)
    params = ctor.params
    results: List[ResolvedParam] = []

    positional = list(params.posonly_params) + list(params.params)
    for param in positional[1:]:
      results.append(self._resolve_param(sf, param, ctx))
    if isinstance(params.star_arg, cst.Param):
      results.append(_variadic(params.star_arg))
    for param in params.kwonly_params:
      results.append(self._resolve_param(sf, param, ctx))
    if params.star_kwarg is not None:
      results.append(_variadic(params.star_kwarg))
    return results

  def _resolve_param(self, sf: SourceFile, param: cst.Param, ctx: _Context) -> ResolvedParam:
    name = param.name.value
    if param.default is not None:
      return ResolvedParam(name, param, None, has_default=True)
    if param.annotation is None:
      return ResolvedParam(name, param, None, "has no type annotation")
    symbol, reason = self.resolve_parameter_type(sf, param.annotation.annotation, ctx)
    return ResolvedParam(name, param, symbol, reason)

  def resolve_parameter_type(
    self,
    sf: SourceFile,
    annotation: cst.BaseExpression,
    context: Optional[_Context] = None,
  ) -> Tuple[Optional[Symbol], Optional[str]]:
    """
    Decides whether an annotation names a concrete, importable class.

    Args:
        sf: The module containing the annotation.
        annotation: The annotation expression.
        context: Local scopes for resolution.

    Returns:
        (symbol, None) when injectable, else (None, reason).
    """
    code = sf.code_for(annotation)
    expr = annotation
    if isinstance(expr, (cst.SimpleString, cst.ConcatenatedString)):
      parsed = _parse_forward_ref(expr)
      if parsed is None:
        return None, f"has unparsable forward reference {code}"
      expr = parsed

    if isinstance(expr, cst.Subscript):
      return None, f"has generic type '{code}'"
    if isinstance(expr, cst.BinaryOperation):
      return None, f"has union type '{code}'"

    symbol = self.resolve_expression(sf, expr, context)
    if symbol.kind == SymbolKind.UNKNOWN:
      return None, f"has type '{code}' which cannot be resolved"
    if symbol.kind == SymbolKind.MODULE:
      return None, f"refers to module '{code}'"
    if symbol.kind == SymbolKind.VALUE:
      return None, f"has type '{code}' which is not a class"
    if symbol.origin == SymbolOrigin.BUILTIN:
      return None, f"has primitive type '{code}'"
    if symbol.origin == SymbolOrigin.TYPING:
      return None, f"has erased type '{code}'"
    if symbol.is_project_class and self.is_structural(symbol.node):
      return None, f"has structural type '{code}'"
    return symbol, None


def _variadic(param: cst.Param) -> ResolvedParam:
  return ResolvedParam(param.name.value, param, None, "is variadic and cannot be injected")


def _parse_forward_ref(expr: cst.BaseExpression) -> Optional[cst.BaseExpression]:
  value = expr.evaluated_value
  if not isinstance(value, str):
    return None
  try:
    return cst.parse_expression(value.strip())
  except cst.ParserSyntaxError:
    return None
