"""
Migrate Command Handler.

This module implements the logic for the `di-migrator migrate` command.
It orchestrates:
1. Runtime configuration loading (TOML + CLI overrides).
2. Project discovery and migration via the Engine.
3. Diff output for dry runs.
"""

from pathlib import Path
from typing import List, Optional

from rich.markup import escape

from di_migrator.config import RuntimeConfig
from di_migrator.core.engine import run_migration
from di_migrator.errors import MigrationError
from di_migrator.tree import DiskTree
from di_migrator.utils.console import console, log_error, log_info, set_verbosity


def handle_migrate(
  root: Path,
  config_paths: Optional[List[str]],
  dry_run: Optional[bool],
  verbose: Optional[bool],
) -> int:
  """
  Handles the 'migrate' command execution.

  Args:
      root: Directory containing the projects to migrate.
      config_paths: Explicit project configs relative to `root`, or None to discover.
      dry_run: Override for dry-run mode.
      verbose: Override for debug logging.

  Returns:
      int: Exit code (0 for success, 1 if a project could not be analyzed).
  """
  if not root.is_dir():
    log_error(f"Root directory not found: {escape(str(root))}")
    return 1

  try:
    config = RuntimeConfig.load(dry_run=dry_run, verbose=verbose, search_path=root)
    set_verbosity(config.verbose)
    tree = DiskTree(root, dry_run=config.dry_run)
    result = run_migration(tree, config_paths)
  except MigrationError as e:
    log_error(escape(str(e)))
    return 1

  if config.dry_run:
    diff = tree.diff()
    if diff:
      console.print(diff, markup=False, highlight=False, soft_wrap=True, end="")
    else:
      log_info("Dry run: no changes.")

  return 1 if result.program_error else 0
