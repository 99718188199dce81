"""
Tests for the Import Manager.

Verifies:
1.  Reuse of existing imports (named, aliased, star, module imports).
2.  Merging into an existing 'from module import ...' clause.
3.  Placement of new statements and conflict-free aliases.
4.  Imports run before the classes that use them.
"""

import pytest

from di_migrator.analysis.source_file import SourceFile
from di_migrator.core.import_manager import ImportManager
from di_migrator.core.update_recorder import UpdateRecorder
from di_migrator.tree import MemoryTree


class _Harness:
  """Import manager wired to lazily created recorders over a memory tree."""

  def __init__(self, text):
    self.tree = MemoryTree({"a.py": text})
    self.sf = SourceFile("a.py", "a", text)
    self.recorders = {}
    self.manager = ImportManager(self.get_update_recorder)

  def get_update_recorder(self, sf):
    if sf not in self.recorders:
      self.recorders[sf] = UpdateRecorder(sf, self.tree.begin_update(sf.path))
    return self.recorders[sf]

  def add(self, symbol, module="di", before=None):
    return self.manager.add_import(self.sf, symbol, module, before)

  def commit(self):
    self.manager.record_changes()
    for recorder in self.recorders.values():
      recorder.commit_update(self.tree)
    return self.tree.read("a.py")


@pytest.mark.parametrize(
  "text, expected",
  [
    ("from di import injectable\n", "injectable"),
    ("from di import component, injectable as inj\n", "inj"),
    ("from di import *\n", "injectable"),
    ("import di\n", "di.injectable"),
    ("import di as d\n", "d.injectable"),
  ],
)
def test_existing_imports_are_reused(text, expected):
  harness = _Harness(text)
  assert harness.add("injectable") == expected
  assert harness.commit() == text
  assert harness.recorders == {}


def test_dotted_module_import_is_reused():
  harness = _Harness("import app.di\n")
  assert harness.add("injectable", "app.di") == "app.di.injectable"


def test_merge_into_sorted_clause():
  harness = _Harness("from di import component, pipe\n")
  assert harness.add("injectable") == "injectable"
  assert harness.commit() == "from di import component, injectable, pipe\n"


def test_merge_into_unsorted_clause_appends():
  harness = _Harness("from di import pipe, component\n")
  harness.add("injectable")
  assert harness.commit() == "from di import pipe, component, injectable\n"


def test_merge_into_parenthesized_clause():
  harness = _Harness("from di import (\n    component,\n    pipe,\n)\n")
  harness.add("injectable")
  assert harness.commit() == "from di import (\n    component,\n    injectable,\n    pipe,\n)\n"


def test_relative_clause_is_not_merged():
  harness = _Harness("from .di import component\n")
  harness.add("injectable")
  assert harness.commit() == "from .di import component\nfrom di import injectable\n"


def test_new_import_after_last_import():
  text = "import os\nimport sys\n\nx = 1\n"
  harness = _Harness(text)
  harness.add("injectable")
  harness.add("directive")
  assert harness.commit() == "import os\nimport sys\nfrom di import injectable, directive\n\nx = 1\n"


def test_new_imports_per_module():
  harness = _Harness("import os\n")
  harness.add("injectable")
  harness.add("helper", "app.util")
  assert harness.commit() == "import os\nfrom di import injectable\nfrom app.util import helper\n"


def test_new_import_without_trailing_newline():
  harness = _Harness("import os")
  harness.add("injectable")
  assert harness.commit() == "import os\nfrom di import injectable\n"


def test_new_import_after_docstring():
  harness = _Harness('"""Doc."""\nx = 1\n')
  harness.add("injectable")
  assert harness.commit() == '"""Doc."""\n\nfrom di import injectable\nx = 1\n'


def test_new_import_after_future_import():
  harness = _Harness('"""Doc."""\nfrom __future__ import annotations\n\nx = 1\n')
  harness.add("injectable")
  assert harness.commit() == '"""Doc."""\nfrom __future__ import annotations\n\nfrom di import injectable\n\nx = 1\n'


def test_new_import_before_first_statement():
  harness = _Harness("# header comment\n@other\nclass A:\n    pass\n")
  harness.add("injectable")
  assert harness.commit() == "# header comment\nfrom di import injectable\n\n\n@other\nclass A:\n    pass\n"


def test_name_conflicts_get_unique_alias():
  """
  Scenario: The file already uses 'injectable' and 'injectable_1'.
  Expectation: The symbol is imported as 'injectable_2'.
  """
  harness = _Harness("import os\n\ninjectable = 1\ninjectable_1 = 2\n")
  assert harness.add("injectable") == "injectable_2"
  assert harness.commit() == "import os\nfrom di import injectable as injectable_2\n\ninjectable = 1\ninjectable_1 = 2\n"


def test_requests_are_cached():
  harness = _Harness("import os\n")
  assert harness.add("injectable") == "injectable"
  assert harness.add("injectable") == "injectable"
  assert harness.commit() == "import os\nfrom di import injectable\n"


def test_merge_keeps_comments_in_multiline_clause():
  harness = _Harness("from di import (\n    component,  # used by views\n    pipe,\n)\n")
  harness.add("injectable")
  assert harness.commit() == "from di import (\n    component,  # used by views\n    injectable,\n    pipe,\n)\n"


def test_merge_appends_to_multiline_clause():
  harness = _Harness("from di import (\n    component,\n    directive,  # base\n)\n")
  harness.add("pipe")
  assert harness.commit() == "from di import (\n    component,\n    directive, pipe,  # base\n)\n"


def test_late_imports_are_not_used():
  """
  Scenario: The only imports come after the class that needs the symbol.
  Expectation: A new statement is added above the class; late imports stay untouched.
  """
  text = "class A:\n    pass\n\n\nimport os\nfrom di import component\n"
  harness = _Harness(text)
  assert harness.add("injectable", before=0) == "injectable"
  assert harness.commit() == "from di import injectable\n\n\n" + text


def test_late_import_of_the_symbol_is_not_reused():
  text = "import os\n\n\nclass A:\n    pass\n\n\nfrom di import injectable\n"
  harness = _Harness(text)
  assert harness.add("injectable", before=text.index("class A")) == "injectable_1"
  assert harness.commit() == (
    "import os\nfrom di import injectable as injectable_1\n\n\nclass A:\n    pass\n\n\nfrom di import injectable\n"
  )


def test_earlier_request_replaces_late_reuse():
  """
  Scenario: 'B' can reuse a late import, then 'A' above it needs the symbol too.
  Expectation: 'A' gets a new alias merged into the clause that precedes it.
  """
  text = "from di import component\n\n\nclass A:\n    pass\n\n\nfrom di import injectable\n\n\nclass B:\n    pass\n"
  harness = _Harness(text)
  assert harness.add("injectable", before=text.index("class B")) == "injectable"
  assert harness.add("injectable", before=text.index("class A")) == "injectable_1"
  assert harness.commit().startswith("from di import component, injectable as injectable_1\n\n\nclass A:")
