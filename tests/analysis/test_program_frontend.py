"""
Tests for the Program Front-End.

Verifies:
1.  Module discovery (source roots, excludes, packages, module names).
2.  Config diagnostics (invalid TOML, validation errors, missing roots).
3.  Syntactic diagnostics per file.
4.  Structural diagnostics (conflicting decorators, inheritance cycles).
"""

import pytest

from di_migrator.analysis.diagnostics import Diagnostic, DiagnosticCategory, format_diagnostics
from di_migrator.analysis.program import create_program, discover_modules
from di_migrator.errors import ProgramError


def test_discovery_with_sources_and_excludes(make_tree):
  """
  Scenario: Project in 'proj/' with sources=['src'] and an exclude pattern.
  Expectation: Module names are relative to the source root; excluded and
  out-of-root files are skipped.
  """
  tree = make_tree(
    {
      "src/app/__init__.py": "",
      "src/app/svc.py": "class Svc:\n    pass\n",
      "src/app/tests/test_svc.py": "",
      "src/app/data.json": "{}",
      "scripts/tool.py": "",
    },
    pyproject='[tool.di_migrator]\nsources = ["src"]\nexclude = ["src/app/tests/*"]\n',
    root="proj",
  )
  program = create_program("proj/pyproject.toml", tree)

  assert program.root == "proj"
  assert not program.config_diagnostics
  assert [(sf.path, sf.module_name, sf.is_package) for sf in program.source_files] == [
    ("proj/src/app/__init__.py", "app", True),
    ("proj/src/app/svc.py", "app.svc", False),
  ]


def test_discovery_skips_non_identifier_paths(make_tree):
  tree = make_tree({"my-scripts/run.py": "", "ok.py": ""}, pyproject=None)
  assert discover_modules(tree, "", [""], []) == [("ok.py", "ok", False)]


def test_missing_config_file():
  from di_migrator.tree import MemoryTree

  with pytest.raises(ProgramError):
    create_program("pyproject.toml", MemoryTree({"a.py": ""}))


def test_invalid_toml(build_program):
  program = build_program({"a.py": ""}, pyproject="[tool.di_migrator\n")
  (diag,) = program.config_diagnostics
  assert diag.category == DiagnosticCategory.CONFIG
  assert diag.message.startswith("Invalid TOML")
  assert diag.path == "pyproject.toml"
  assert program.source_files == []


def test_validation_errors(build_program):
  program = build_program({"a.py": ""}, pyproject='[tool.di_migrator]\nframework = "bad name"\n')
  (diag,) = program.config_diagnostics
  assert diag.message.startswith("framework: ")


def test_missing_source_root(build_program):
  program = build_program({"a.py": ""}, pyproject='[tool.di_migrator]\nsources = ["lib"]\n')
  (diag,) = program.config_diagnostics
  assert diag.message == "Source root 'lib' does not exist."


def test_syntax_errors(build_program):
  """
  Scenario: One module fails to parse.
  Expectation: A syntactic diagnostic pointing at the file; other modules still parse.
  """
  program = build_program({"bad.py": "def broken(:\n    pass\n", "good.py": "x = 1\n"})
  (diag,) = program.syntactic_diagnostics
  assert diag.category == DiagnosticCategory.SYNTACTIC
  assert diag.path == "bad.py"
  assert diag.line == 1
  assert [sf.path for sf in program.source_files] == ["good.py"]


def test_conflicting_decorators_are_structural(build_program):
  program = build_program(
    {
      "a.py": """
        from di import component, injectable


        @component()
        @injectable()
        class Both:
            pass
      """
    }
  )
  (diag,) = program.structural_diagnostics
  assert diag.category == DiagnosticCategory.STRUCTURAL
  assert (diag.path, diag.line, diag.column) == ("a.py", 4, 1)
  assert "both a directive and a provider" in diag.message


def test_inheritance_cycle_is_structural(build_program):
  program = build_program(
    {
      "a.py": "from b import B\n\n\nclass A(B):\n    pass\n",
      "b.py": "from a import A\n\n\nclass B(A):\n    pass\n",
    }
  )
  (diag,) = program.structural_diagnostics
  assert diag.message == "Class 'A' is part of an inheritance cycle."
  assert (diag.path, diag.line, diag.column) == ("a.py", 4, 1)


def test_diagnostic_format():
  diags = [
    Diagnostic(DiagnosticCategory.SYNTACTIC, "bad token", path="a.py", line=3, column=7),
    Diagnostic(DiagnosticCategory.CONFIG, "broken", path="pyproject.toml"),
    Diagnostic(DiagnosticCategory.CONFIG, "no path"),
  ]
  assert format_diagnostics(diags) == (
    "a.py:3:7 - error: bad token\npyproject.toml - error: broken\n<project> - error: no path"
  )
