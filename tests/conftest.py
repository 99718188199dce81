"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- Console isolation so captured migration reports never leak between tests.
- Helpers building in-memory projects and programs.
"""

import io
import sys
import textwrap
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest
from rich.console import Console

# Add src to path so we can import 'di_migrator' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from di_migrator.analysis.program import Program, create_program  # noqa: E402
from di_migrator.tree import MemoryTree  # noqa: E402
from di_migrator.utils.console import reset_console, set_console  # noqa: E402

DEFAULT_PYPROJECT = "[tool.di_migrator]\n"


def dedent(code: str) -> str:
  """Strips the common indentation and the leading newline of a test source."""
  return textwrap.dedent(code).lstrip("\n")


def make_tree(files: Dict[str, str], pyproject: Optional[str] = DEFAULT_PYPROJECT, root: str = "") -> MemoryTree:
  """
  Builds an in-memory project.

  Args:
      files: Paths (relative to `root`) to source text; dedented.
      pyproject: Content of the project's pyproject.toml (None to omit).
      root: Directory holding the project.

  Returns:
      MemoryTree: The tree.
  """
  prefix = f"{root}/" if root else ""
  contents = {f"{prefix}{path}": dedent(text) for path, text in files.items()}
  if pyproject is not None:
    contents[f"{prefix}pyproject.toml"] = pyproject
  return MemoryTree(contents)


@pytest.fixture(name="make_tree")
def make_tree_fixture() -> Callable[..., MemoryTree]:
  """Returns the in-memory project factory."""
  return make_tree


@pytest.fixture
def build_program() -> Callable[..., Program]:
  """Returns a factory creating a program from source files."""

  def _build(files: Dict[str, str], pyproject: str = DEFAULT_PYPROJECT) -> Program:
    tree = make_tree(files, pyproject)
    return create_program("pyproject.toml", tree)

  return _build


@pytest.fixture
def capture_console():
  """Routes all logging into a recording console and returns it."""
  recorder = Console(record=True, width=400, file=io.StringIO())
  set_console(recorder)
  yield recorder
  reset_console()


@pytest.fixture(autouse=True)
def isolate_console():
  """
  Ensures that console redirection and verbosity changes do not leak between tests.
  """
  yield
  reset_console()
