"""
Tests for the Undecorated Classes Transform.

Runs single-project migrations over in-memory trees and checks the committed
sources and reported failures.

Verifies:
1.  Decoration of undecorated declarations (own and inherited constructors).
2.  Conservative failures (unresolvable parameters, external and ambiguous bases).
3.  Directive base decoration and decorated-class consistency checks.
4.  Import reuse, merging and aliasing in the edited files.
"""

import textwrap

import pytest

from di_migrator.core.engine import run_undecorated_classes_migration

DEP = "class Dep:\n    pass\n"


def _src(code):
  return textwrap.dedent(code).lstrip("\n")


@pytest.fixture
def migrate(make_tree):
  """Runs the migration on a project and returns (tree, failures)."""

  def _migrate(files, **kwargs):
    tree = make_tree({"dep.py": DEP, **files}, **kwargs)
    result = run_undecorated_classes_migration(tree, "pyproject.toml")
    assert not result.program_error
    return tree, result.failures

  return _migrate


def test_base_and_child_gain_decorator(migrate):
  """
  Scenario: Undecorated 'Base' with an injectable constructor and 'Child(Base)'.
  Expectation: Both decorated, one import added, no failures.
  """
  tree, failures = migrate(
    {
      "a.py": """
        from dep import Dep


        class Base:
            def __init__(self, x: Dep):
                self.x = x


        class Child(Base):
            pass
      """
    }
  )
  assert failures == []
  assert tree.read("a.py") == _src(
    """
    from dep import Dep
    from di import injectable


    # Made injectable because its constructor takes dependencies.
    @injectable()
    class Base:
        def __init__(self, x: Dep):
            self.x = x


    # Made injectable because it inherits a constructor with dependencies from 'Base'.
    @injectable()
    class Child(Base):
        pass
    """
  )
  assert tree.read("dep.py") == DEP


def test_import_precedes_decorator_at_file_start(migrate):
  tree, failures = migrate(
    {
      "a.py": """
        class Svc:
            def __init__(self, dep: Dep):
                self.dep = dep


        class Dep:
            pass
      """
    }
  )
  assert failures == []
  assert tree.read("a.py") == _src(
    """
    from di import injectable


    # Made injectable because its constructor takes dependencies.
    @injectable()
    class Svc:
        def __init__(self, dep: Dep):
            self.dep = dep


    class Dep:
        pass
    """
  )


def test_unresolvable_parameter_fails_without_edits(migrate):
  source = "class Svc:\n    def __init__(self, name: str):\n        self.name = name\n"
  tree, failures = migrate({"a.py": source})
  assert failures == ["a.py@1:1: Class 'Svc' cannot be injected: parameter 'name' has primitive type 'str'."]
  assert tree.read("a.py") == source


def test_inherited_unresolvable_constructor_fails(migrate):
  source = _src(
    """
    class Base:
        def __init__(self, *args):
            pass


    class Child(Base):
        pass
    """
  )
  _, failures = migrate({"a.py": source})
  assert failures == [
    "a.py@1:1: Class 'Base' cannot be injected: parameter 'args' is variadic and cannot be injected.",
    "a.py@6:1: Class 'Child' inherits a constructor from 'Base' that cannot be injected: "
    "parameter 'args' is variadic and cannot be injected.",
  ]


def test_external_base_fails(migrate):
  source = "from ext.lib import ExtBase\n\n\nclass Child(ExtBase):\n    pass\n"
  tree, failures = migrate({"a.py": source})
  assert failures == [
    "a.py@4:1: Class 'Child' inherits its constructor from 'ext.lib.ExtBase' which cannot be analyzed. "
    "Declare an explicit constructor or list the base in 'ignored_bases'."
  ]
  assert tree.read("a.py") == source


def test_external_base_with_own_constructor_is_decorated(migrate):
  tree, failures = migrate(
    {
      "a.py": """
        from dep import Dep
        from ext.lib import ExtBase


        class Child(ExtBase):
            def __init__(self, dep: Dep):
                super().__init__()
      """
    }
  )
  assert failures == []
  assert "@injectable()\nclass Child(ExtBase):" in tree.read("a.py")


def test_ambiguous_bases_fail(migrate):
  tree, failures = migrate(
    {
      "a.py": """
        from dep import Dep


        class A:
            def __init__(self, dep: Dep):
                pass


        class B:
            def __init__(self, dep: Dep):
                pass


        class C(A, B):
            pass
      """
    }
  )
  assert failures == [
    "a.py@14:1: Class 'C' inherits from multiple classes that require dependency injection ('a.A', 'a.B'). "
    "Declare an explicit constructor."
  ]
  content = tree.read("a.py")
  assert content.count("@injectable()") == 2
  assert "class C(A, B):" in content
  assert "@injectable()\nclass C" not in content


def test_inheritance_across_modules(migrate):
  tree, failures = migrate(
    {
      "base.py": """
        from dep import Dep


        class Base:
            def __init__(self, dep: Dep):
                self.dep = dep
      """,
      "child.py": """
        from base import Base


        class Child(Base):
            pass
      """,
    }
  )
  assert failures == []
  assert tree.read("child.py") == _src(
    """
    from base import Base
    from di import injectable


    # Made injectable because it inherits a constructor with dependencies from 'Base'.
    @injectable()
    class Child(Base):
        pass
    """
  )
  assert "@injectable()\nclass Base:" in tree.read("base.py")


def test_nested_class_keeps_indentation(migrate):
  tree, _ = migrate(
    {
      "a.py": """
        from dep import Dep


        def make():
            class Local:
                def __init__(self, dep: Dep):
                    self.dep = dep

            return Local
      """
    }
  )
  assert tree.read("a.py") == _src(
    """
    from dep import Dep
    from di import injectable


    def make():
        # Made injectable because its constructor takes dependencies.
        @injectable()
        class Local:
            def __init__(self, dep: Dep):
                self.dep = dep

        return Local
    """
  )


def test_directive_base_gets_abstract_decorator(migrate):
  """
  Scenario: '@component()' class inheriting its constructor from an undecorated base.
  Expectation: The base gets '@directive()', merged into the existing import.
  """
  tree, failures = migrate(
    {
      "a.py": """
        from di import component
        from dep import Dep


        class BaseCmp:
            def __init__(self, dep: Dep):
                self.dep = dep


        @component()
        class Cmp(BaseCmp):
            pass
      """
    }
  )
  assert failures == []
  assert tree.read("a.py") == _src(
    """
    from di import component, directive
    from dep import Dep


    @directive()
    class BaseCmp:
        def __init__(self, dep: Dep):
            self.dep = dep


    @component()
    class Cmp(BaseCmp):
        pass
    """
  )


def test_directive_with_external_base_fails(migrate):
  _, failures = migrate(
    {
      "a.py": """
        from di import component
        from ext.lib import Widget


        @component()
        class Cmp(Widget):
            pass
      """
    }
  )
  (failure,) = failures
  assert failure.startswith("a.py@5:1: Class 'Cmp' inherits its constructor from 'ext.lib.Widget'")


def test_provider_consistency_checks(migrate):
  source = _src(
    """
    from di import injectable


    @injectable
    class Bare:
        pass


    @injectable(deps=["a"])
    class Mismatch:
        def __init__(self, a: int, b: int):
            pass


    @injectable(deps=["a"])
    class Explicit:
        def __init__(self, a: int):
            pass


    @injectable()
    class Unresolved:
        def __init__(self, a: int):
            pass
    """
  )
  tree, failures = migrate({"a.py": source})
  assert failures == [
    "a.py@4:1: Class 'Bare' uses '@injectable' without calling it. Use '@injectable()' instead.",
    "a.py@9:1: Class 'Mismatch' declares 1 dependencies in 'deps' but its constructor takes 2 injected parameters.",
    "a.py@21:1: Class 'Unresolved' cannot be injected: parameter 'a' has primitive type 'int'.",
  ]
  assert tree.read("a.py") == source


def test_name_conflict_uses_alias(migrate):
  tree, _ = migrate(
    {
      "a.py": """
        from dep import Dep

        injectable = "not the decorator"


        class Svc:
            def __init__(self, dep: Dep):
                self.dep = dep
      """
    }
  )
  assert tree.read("a.py") == _src(
    """
    from dep import Dep
    from di import injectable as injectable_1

    injectable = "not the decorator"


    # Made injectable because its constructor takes dependencies.
    @injectable_1()
    class Svc:
        def __init__(self, dep: Dep):
            self.dep = dep
    """
  )


def test_module_import_is_reused(migrate):
  tree, _ = migrate(
    {
      "a.py": """
        import di
        from dep import Dep


        class Svc:
            def __init__(self, dep: Dep):
                self.dep = dep
      """
    }
  )
  content = tree.read("a.py")
  assert content.startswith("import di\nfrom dep import Dep\n\n\n# Made injectable")
  assert "@di.injectable()\nclass Svc:" in content


def test_custom_framework_module(migrate):
  tree, _ = migrate(
    {"a.py": "from dep import Dep\n\n\nclass Svc:\n    def __init__(self, dep: Dep):\n        pass\n"},
    pyproject='[tool.di_migrator]\nframework = "app.di"\n',
  )
  assert tree.read("a.py").startswith("from dep import Dep\nfrom app.di import injectable\n")


def test_defaults_need_no_injection(migrate):
  tree, failures = migrate(
    {"a.py": "class Svc:\n    def __init__(self, retries: int = 3):\n        pass\n"},
  )
  assert failures == []
  assert "@injectable()\nclass Svc:" in tree.read("a.py")


def test_late_imports_do_not_provide_the_decorator(migrate):
  """
  Scenario: 'import os' and 'from di import component' run after the class.
  Expectation: The new import goes above the class; the late clause is not merged.
  """
  tree, failures = migrate(
    {
      "a.py": """
        from dep import Dep


        class A:
            def __init__(self, dep: Dep):
                pass


        import os  # noqa: E402
        from di import component  # noqa: E402


        @component()
        class Cmp:
            pass
      """
    }
  )
  assert failures == []
  assert tree.read("a.py") == _src(
    """
    from dep import Dep
    from di import injectable


    # Made injectable because its constructor takes dependencies.
    @injectable()
    class A:
        def __init__(self, dep: Dep):
            pass


    import os  # noqa: E402
    from di import component  # noqa: E402


    @component()
    class Cmp:
        pass
    """
  )


def test_star_import_provides_the_decorator(migrate):
  tree, _ = migrate(
    {"a.py": "from di import *\nfrom dep import Dep\n\n\nclass Svc:\n    def __init__(self, dep: Dep):\n        pass\n"}
  )
  assert tree.read("a.py") == (
    "from di import *\nfrom dep import Dep\n\n\n"
    "# Made injectable because its constructor takes dependencies.\n"
    "@injectable()\nclass Svc:\n    def __init__(self, dep: Dep):\n        pass\n"
  )
