"""
Virtual File Tree.

The migration never writes files directly. It reads sources through a
:class:`FileTree` and describes changes as positioned edit intents on an
:class:`UpdateHandle`. Intents refer to offsets in the content as it was when the
handle was opened, so edits recorded in any order never shift one another.
Committing a handle applies all intents in one step.

Ordering at a shared offset: every ``InsertLeft`` text precedes every
``InsertRight`` text; within one kind, queue order is kept.
"""

import abc
import difflib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Union

from di_migrator.errors import EditConflictError, UpdateConflictError

# Directory names never descended into when listing files.
IGNORED_DIRECTORIES = {"__pycache__", "node_modules", "site-packages", "venv", ".venv", ".git", ".tox"}


@dataclass(frozen=True)
class InsertLeft:
  """Inserts text at an offset, before any right-anchored insertion there."""

  offset: int
  text: str


@dataclass(frozen=True)
class InsertRight:
  """Inserts text at an offset, after any left-anchored insertion there."""

  offset: int
  text: str


@dataclass(frozen=True)
class Remove:
  """Removes `length` characters starting at `offset`."""

  offset: int
  length: int


EditIntent = Union[InsertLeft, InsertRight, Remove]


def apply_edits(content: str, intents: Iterable[EditIntent]) -> str:
  """
  Applies edit intents to a string.

  Args:
      content: The original text the offsets refer to.
      intents: Intents in queue order.

  Returns:
      str: The edited text.

  Raises:
      EditConflictError: If an offset is out of range or removals overlap.
  """
  size = len(content)
  left: Dict[int, List[str]] = {}
  right: Dict[int, List[str]] = {}
  removals: List[Remove] = []

  for intent in intents:
    if intent.offset < 0 or intent.offset > size:
      raise EditConflictError(f"Edit offset {intent.offset} outside of content (length {size}).")
    if isinstance(intent, InsertLeft):
      left.setdefault(intent.offset, []).append(intent.text)
    elif isinstance(intent, InsertRight):
      right.setdefault(intent.offset, []).append(intent.text)
    else:
      if intent.length < 0 or intent.offset + intent.length > size:
        raise EditConflictError(f"Removal of {intent.length} characters at {intent.offset} exceeds content.")
      removals.append(intent)

  removals.sort(key=lambda r: r.offset)
  for prev, curr in zip(removals, removals[1:]):
    if curr.offset < prev.offset + prev.length:
      raise EditConflictError(f"Overlapping removals at offsets {prev.offset} and {curr.offset}.")

  removed_starts = {r.offset: r.offset + r.length for r in removals if r.length}
  cuts = sorted({0, size, *left, *right, *removed_starts, *removed_starts.values()})

  out: List[str] = []
  removed_until = 0
  for idx, pos in enumerate(cuts):
    out.extend(left.get(pos, ()))
    out.extend(right.get(pos, ()))
    if pos in removed_starts:
      removed_until = removed_starts[pos]
    if idx + 1 < len(cuts) and pos >= removed_until:
      out.append(content[pos : cuts[idx + 1]])

  return "".join(out)


class UpdateHandle:
  """
  Buffers edit intents for one file.

  Attributes:
      path (str): Tree-relative POSIX path of the file.
      original (str): Content when the handle was opened.
      intents (List[EditIntent]): Buffered intents in queue order.
      committed (bool): True once the handle has been committed.
  """

  def __init__(self, path: str, original: str):
    self.path = path
    self.original = original
    self.intents: List[EditIntent] = []
    self.committed = False

  def insert_left(self, offset: int, text: str) -> None:
    self._queue(InsertLeft(offset, text))

  def insert_right(self, offset: int, text: str) -> None:
    self._queue(InsertRight(offset, text))

  def remove(self, offset: int, length: int) -> None:
    self._queue(Remove(offset, length))

  def _queue(self, intent: EditIntent) -> None:
    if self.committed:
      raise EditConflictError(f"Update for '{self.path}' was already committed.")
    if intent.offset < 0 or intent.offset > len(self.original):
      raise EditConflictError(f"Edit offset {intent.offset} outside of '{self.path}'.")
    self.intents.append(intent)

  def render(self) -> str:
    """Returns the content with all buffered intents applied."""
    return apply_edits(self.original, self.intents)


def normalize_path(path: Union[str, PurePosixPath]) -> str:
  """
  Normalizes a tree path to a relative POSIX string without './' segments.

  Args:
      path: Raw path.

  Returns:
      str: e.g. 'pkg/mod.py'.
  """
  parts = [p for p in PurePosixPath(str(path).replace("\\", "/")).parts if p not in (".", "/")]
  return "/".join(parts)


class FileTree(abc.ABC):
  """
  Abstract file tree used by the migration.

  Subclasses provide storage; this base class enforces that at most one update
  handle is open per path.
  """

  def __init__(self) -> None:
    self._open_handles: Dict[str, UpdateHandle] = {}

  @abc.abstractmethod
  def read(self, path: str) -> str:
    """
    Reads a file.

    Raises:
        FileNotFoundError: If the path does not exist.
    """

  @abc.abstractmethod
  def exists(self, path: str) -> bool:
    """Checks whether a file exists."""

  @abc.abstractmethod
  def list_files(self, directory: str = "") -> List[str]:
    """Lists all files below a directory, sorted, skipping ignored directories."""

  @abc.abstractmethod
  def _write(self, path: str, content: str) -> None:
    """Persists new content."""

  def begin_update(self, path: str) -> UpdateHandle:
    """
    Opens an update handle for a file.

    Args:
        path: Tree-relative path.

    Returns:
        UpdateHandle: A fresh handle based on the current content.

    Raises:
        UpdateConflictError: If a handle for the path is still open.
    """
    key = normalize_path(path)
    if key in self._open_handles:
      raise UpdateConflictError(f"An update for '{key}' is already in progress.")
    handle = UpdateHandle(key, self.read(key))
    self._open_handles[key] = handle
    return handle

  def commit_update(self, handle: UpdateHandle) -> None:
    """
    Applies a handle's intents and closes it.

    Committing twice, or committing a handle without intents, does not write.

    Args:
        handle: The handle returned by `begin_update`.
    """
    if handle.committed:
      return
    handle_content = handle.render()
    handle.committed = True
    self._open_handles.pop(handle.path, None)
    if handle.intents and handle_content != handle.original:
      self._write(handle.path, handle_content)


class MemoryTree(FileTree):
  """
  In-memory file tree.

  Attributes:
      files (Dict[str, str]): Path to content mapping.
  """

  def __init__(self, files: Optional[Dict[str, str]] = None):
    super().__init__()
    self.files: Dict[str, str] = {normalize_path(k): v for k, v in (files or {}).items()}

  def read(self, path: str) -> str:
    key = normalize_path(path)
    if key not in self.files:
      raise FileNotFoundError(key)
    return self.files[key]

  def exists(self, path: str) -> bool:
    return normalize_path(path) in self.files

  def list_files(self, directory: str = "") -> List[str]:
    prefix = normalize_path(directory)
    results = []
    for path in sorted(self.files):
      if prefix and not path.startswith(prefix + "/"):
        continue
      if any(_is_ignored_dir(part) for part in path.split("/")[:-1]):
        continue
      results.append(path)
    return results

  def _write(self, path: str, content: str) -> None:
    self.files[path] = content


class DiskTree(FileTree):
  """
  File tree backed by a directory on disk.

  In dry-run mode, changes are kept in memory so that later reads (e.g. by a
  second project covering the same files) observe them, but nothing is written.

  Attributes:
      root (Path): The tree root.
      dry_run (bool): If True, never write to disk.
      changes (Dict[str, str]): Original content of every changed file.
  """

  def __init__(self, root: Path, dry_run: bool = False):
    super().__init__()
    self.root = Path(root)
    self.dry_run = dry_run
    self.changes: Dict[str, str] = {}
    self._overlay: Dict[str, str] = {}

  def read(self, path: str) -> str:
    key = normalize_path(path)
    if key in self._overlay:
      return self._overlay[key]
    target = self.root / key
    if not target.is_file():
      raise FileNotFoundError(key)
    # newline="" keeps '\r\n' intact so offsets match the file
    with open(target, "r", encoding="utf-8", newline="") as f:
      return f.read()

  def exists(self, path: str) -> bool:
    key = normalize_path(path)
    return key in self._overlay or (self.root / key).is_file()

  def list_files(self, directory: str = "") -> List[str]:
    base = self.root / normalize_path(directory)
    if not base.is_dir():
      return []
    results = []
    for path in base.rglob("*"):
      rel = path.relative_to(self.root)
      if any(_is_ignored_dir(part) for part in rel.parts[:-1]):
        continue
      if path.is_file():
        results.append(rel.as_posix())
    return sorted(results)

  def _write(self, path: str, content: str) -> None:
    if path not in self.changes:
      self.changes[path] = self.read(path)
    if self.dry_run:
      self._overlay[path] = content
      return
    with open(self.root / path, "w", encoding="utf-8", newline="") as f:
      f.write(content)

  def diff(self) -> str:
    """
    Renders a unified diff of every changed file.

    Returns:
        str: Concatenated diff text (empty if nothing changed).
    """
    chunks = []
    for path in sorted(self.changes):
      before = self.changes[path].splitlines(keepends=True)
      after = self.read(path).splitlines(keepends=True)
      chunks.extend(difflib.unified_diff(before, after, fromfile=f"a/{path}", tofile=f"b/{path}"))
    return "".join(chunks)


def _is_ignored_dir(name: str) -> bool:
  return name in IGNORED_DIRECTORIES or (name.startswith(".") and name not in (".", ".."))
