"""
Front-end Diagnostics.

Diagnostics are partitioned into three categories, each independently fatal for
the project it belongs to. The runner checks them in priority order:
configuration, then syntax, then structure.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


class DiagnosticCategory(str, Enum):
  """Categories of front-end diagnostics."""

  CONFIG = "config"
  SYNTACTIC = "syntactic"
  STRUCTURAL = "structural"


@dataclass(frozen=True)
class Diagnostic:
  """
  A single front-end error.

  Attributes:
      category: The diagnostic category.
      message: Human-readable description.
      path: Tree-relative path of the offending file, if any.
      line: 1-based line number, if known.
      column: 1-based column number, if known.
  """

  category: DiagnosticCategory
  message: str
  path: Optional[str] = None
  line: Optional[int] = None
  column: Optional[int] = None

  def format(self) -> str:
    """
    Renders the diagnostic as ``path:line:column - error: message``.

    Returns:
        str: The formatted diagnostic.
    """
    location = self.path or "<project>"
    if self.line is not None:
      location += f":{self.line}"
      if self.column is not None:
        location += f":{self.column}"
    return f"{location} - error: {self.message}"


def format_diagnostics(diagnostics: Iterable[Diagnostic]) -> str:
  """
  Renders diagnostics one per line.

  Args:
      diagnostics: The diagnostics to format.

  Returns:
      str: Newline-separated diagnostics.
  """
  return "\n".join(d.format() for d in diagnostics)
