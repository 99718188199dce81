"""
CST Helpers for Names and Source Text.

Small, stateless utilities shared by the front-end and the transform: flattening
dotted names, rendering detached nodes, and recognising module-level statements
that new imports must be placed after.
"""

from typing import Union

import libcst as cst

# A dummy module used as a context to render detached nodes.
_RENDER_CTX = cst.parse_module("")


def get_full_name(node: Union[cst.Name, cst.Attribute, cst.BaseExpression]) -> str:
  """
  Recursively resolves a CST Name or Attribute chain to a dot-separated string.

  Args:
    node: The CST node representing the identifier.

  Returns:
    str: The fully qualified string representation (e.g., "di.injectable").
    Returns an empty string if the node is not a Name/Attribute chain.

  Example:
    >>> get_full_name(cst.Attribute(value=cst.Name("di"), attr=cst.Name("injectable")))
    'di.injectable'
  """
  if isinstance(node, cst.Name):
    return node.value
  elif isinstance(node, cst.Attribute):
    inner = get_full_name(node.value)
    return f"{inner}.{node.attr.value}" if inner else ""
  return ""


def capture_node_source(node: cst.CSTNode) -> str:
  """
  Renders a LibCST node into its Python source code string representation.

  Args:
      node: The CST node to serialise.

  Returns:
      str: The Python code string.
  """
  return _RENDER_CTX.code_for_node(node)


def is_docstring(node: cst.CSTNode, idx: int) -> bool:
  """
  Determines if a statement node represents a module docstring.

  Args:
      node: The statement node from the module body.
      idx: The index of this statement in the body list.

  Returns:
      bool: True if it is a docstring (string expression at index 0).
  """
  if idx != 0:
    return False
  if isinstance(node, cst.SimpleStatementLine):
    if len(node.body) == 1 and isinstance(node.body[0], cst.Expr):
      expr = node.body[0].value
      if isinstance(expr, (cst.SimpleString, cst.ConcatenatedString)):
        return True
  return False


def is_future_import(node: cst.CSTNode) -> bool:
  """
  Determines if a statement is a `from __future__ import ...` directive.

  Args:
      node: The statement node.

  Returns:
      bool: True if it is a future import.
  """
  if isinstance(node, cst.SimpleStatementLine):
    for small_stmt in node.body:
      if isinstance(small_stmt, cst.ImportFrom):
        if small_stmt.module and isinstance(small_stmt.module, cst.Name):
          if small_stmt.module.value == "__future__":
            return True
  return False


def is_import_line(node: cst.CSTNode) -> bool:
  """
  Determines if a statement line consists of import statements only.

  Args:
      node: The statement node.

  Returns:
      bool: True for lines such as ``import os`` or ``from a import b; import c``.
  """
  if isinstance(node, cst.SimpleStatementLine) and node.body:
    return all(isinstance(small, (cst.Import, cst.ImportFrom)) for small in node.body)
  return False
