"""
Main Entry Point for di-migrator CLI.

This module handles argument parsing and dispatches to the command handlers
defined in `di_migrator.cli.handlers`.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from di_migrator import __version__
from di_migrator.cli import handlers


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Parses arguments via argparse and calls the appropriate handler function.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, non-zero for failure).
  """
  parser = argparse.ArgumentParser(description="di-migrator: Adds missing dependency injection decorators")
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

  subparsers = parser.add_subparsers(dest="command", required=True)

  # --- Command: MIGRATE ---
  cmd_mig = subparsers.add_parser("migrate", help="Decorate undecorated classes that use dependency injection")
  cmd_mig.add_argument("root", type=Path, nargs="?", default=Path("."), help="Root directory (default: cwd)")
  cmd_mig.add_argument(
    "--config",
    action="append",
    default=None,
    help="Project pyproject.toml relative to ROOT (repeatable; default: discover all)",
  )
  cmd_mig.add_argument(
    "--dry-run",
    action="store_true",
    default=None,
    help="Print a diff instead of writing files (Overrides config)",
  )
  cmd_mig.add_argument(
    "--verbose",
    action="store_true",
    default=None,
    help="Emit debug logging (Overrides config)",
  )

  args = parser.parse_args(argv)

  if args.command == "migrate":
    return handlers.handle_migrate(args.root, args.config, args.dry_run, args.verbose)

  return 0


if __name__ == "__main__":
  sys.exit(main())
