"""
Update Recorder.

Buffers the text edits of one source file on top of a file tree update handle.
All offsets refer to the file content as parsed, so recording order never
shifts positions; the handle applies everything on commit.

Class decorations and comments are right-anchored at the ``class`` keyword.
Imports are left-anchored, so when an import lands at the very same offset as
a decoration (a class that is the first statement of its module) the import
still comes first.
"""

import libcst as cst

from di_migrator.analysis.source_file import SourceFile
from di_migrator.tree import UpdateHandle


class UpdateRecorder:
  """
  Records edits for a single source file.

  Attributes:
      source_file (SourceFile): The file being edited.
      handle (UpdateHandle): The open file tree update.
  """

  def __init__(self, source_file: SourceFile, handle: UpdateHandle):
    self.source_file = source_file
    self.handle = handle

  def _class_anchor(self, node: cst.ClassDef):
    offset = self.source_file.start_offset(node)
    return offset, self.source_file.line_indentation(offset)

  def add_class_comment(self, node: cst.ClassDef, text: str) -> None:
    """
    Adds a comment line directly above a class keyword.

    Args:
        node: The class declaration.
        text: Comment text without the leading ``#``.
    """
    offset, indent = self._class_anchor(node)
    self.handle.insert_right(offset, f"# {text}{self.source_file.newline}{indent}")

  def add_class_decorator(self, node: cst.ClassDef, text: str) -> None:
    """
    Adds a decorator directly above a class keyword, after existing decorators.

    Args:
        node: The class declaration.
        text: Decorator expression, e.g. ``injectable()``.
    """
    offset, indent = self._class_anchor(node)
    self.handle.insert_right(offset, f"@{text}{self.source_file.newline}{indent}")

  def add_new_import(self, offset: int, text: str) -> None:
    """Inserts a new import statement at an offset."""
    self.handle.insert_left(offset, text)

  def update_existing_import(self, start: int, end: int, new_text: str) -> None:
    """
    Replaces the named-import list of an existing import statement.

    Args:
        start: Offset of the first imported name.
        end: Offset after the last imported name.
        new_text: The replacement list.
    """
    self.handle.remove(start, end - start)
    self.handle.insert_right(start, new_text)

  def add_to_existing_import(self, offset: int, text: str) -> None:
    """
    Inserts names into the list of an existing import statement.

    Args:
        offset: Offset inside the named-import list.
        text: The names with their separators.
    """
    self.handle.insert_right(offset, text)

  def commit_update(self, tree) -> None:
    """
    Applies the buffered edits through the file tree.

    Args:
        tree (FileTree): The tree that opened the handle.
    """
    tree.commit_update(self.handle)
