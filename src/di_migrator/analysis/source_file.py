"""
Parsed Source Files.

A :class:`SourceFile` couples a module's text with its LibCST tree, position
metadata and symbol index, and converts positions into character offsets for
edit intents.
"""

import re
from bisect import bisect_right
from typing import List, Mapping, Tuple

import libcst as cst
from libcst.metadata import CodeRange, MetadataWrapper, PositionProvider

from di_migrator.analysis.symbols import ModuleIndex, ModuleIndexer, package_of

_NEWLINE = re.compile(r"\r\n|\r|\n")


class SourceFile:
  """
  A parsed project module.

  Attributes:
      path (str): Tree-relative POSIX path.
      module_name (str): Dotted module name.
      is_package (bool): True for ``__init__.py`` files.
      text (str): The source text the tree was parsed from.
      module (cst.Module): The tree (metadata-enabled copy).
      index (ModuleIndex): Bindings, class records and used names.
  """

  def __init__(self, path: str, module_name: str, text: str, is_package: bool = False):
    """
    Parses and indexes a module.

    Args:
        path: Tree-relative path.
        module_name: Dotted module name.
        text: Source text.
        is_package: True for package ``__init__`` modules.

    Raises:
        libcst.ParserSyntaxError: If the text is not valid Python.
    """
    self.path = path
    self.module_name = module_name
    self.is_package = is_package
    self.text = text

    wrapper = MetadataWrapper(cst.parse_module(text))
    self.module: cst.Module = wrapper.module
    self._positions: Mapping[cst.CSTNode, CodeRange] = wrapper.resolve(PositionProvider)

    indexer = ModuleIndexer(package_of(module_name, is_package))
    self.module.visit(indexer)
    self.index: ModuleIndex = indexer.index()

    self._line_starts: List[int] = [0] + [m.end() for m in _NEWLINE.finditer(text)]

  def __repr__(self) -> str:
    return f"SourceFile({self.path!r})"

  # --- Positions ---

  def position(self, node: cst.CSTNode) -> CodeRange:
    """Returns the syntactic code range of a node (1-based lines, 0-based columns)."""
    return self._positions[node]

  def offset(self, line: int, column: int) -> int:
    """
    Converts a (1-based line, 0-based column) pair to a character offset.

    Args:
        line: Line number.
        column: Column number.

    Returns:
        int: Offset into `text`.
    """
    if line - 1 >= len(self._line_starts):
      return len(self.text)
    return self._line_starts[line - 1] + column

  def start_offset(self, node: cst.CSTNode) -> int:
    """Offset of the first character of a node."""
    start = self.position(node).start
    return self.offset(start.line, start.column)

  def end_offset(self, node: cst.CSTNode) -> int:
    """Offset just after the last character of a node."""
    end = self.position(node).end
    return self.offset(end.line, end.column)

  def statement_start(self, node: cst.CSTNode) -> int:
    """
    Offset where a statement begins, including its decorators.

    LibCST positions of classes and functions start at the keyword; the
    statement itself starts at its first decorator.
    """
    decorators = getattr(node, "decorators", ())
    if decorators:
      return self.start_offset(decorators[0])
    return self.start_offset(node)

  def next_line_offset(self, node: cst.CSTNode) -> int:
    """
    Offset of the line following the node's last line.

    Returns the text length if the node ends on the last line.
    """
    end_line = self.position(node).end.line
    if end_line >= len(self._line_starts):
      return len(self.text)
    return self._line_starts[end_line]

  def line_indentation(self, offset: int) -> str:
    """
    Returns the text between the start of the offset's line and the offset.

    Args:
        offset: A character offset.

    Returns:
        str: Usually the whitespace indentation before a statement keyword.
    """
    line_idx = bisect_right(self._line_starts, offset) - 1
    return self.text[self._line_starts[line_idx] : offset]

  def location(self, node: cst.CSTNode) -> Tuple[int, int]:
    """
    Human-facing location of a statement.

    Args:
        node: A statement node.

    Returns:
        Tuple[int, int]: 1-based line and 1-based column of the statement start.
    """
    offset = self.statement_start(node)
    line_idx = bisect_right(self._line_starts, offset) - 1
    return line_idx + 1, offset - self._line_starts[line_idx] + 1

  def code_for(self, node: cst.CSTNode) -> str:
    """Renders a node with this module's formatting defaults."""
    return self.module.code_for_node(node)

  @property
  def ends_with_newline(self) -> bool:
    return self.text.endswith(("\n", "\r"))

  @property
  def newline(self) -> str:
    """The module's default newline sequence."""
    return self.module.default_newline
