"""
Configuration Store.

Two layers of configuration are read from ``pyproject.toml`` files:

1.  **ProjectConfig**: the ``[tool.di_migrator]`` table of a migrated project.
    It names the source roots and the DI framework's decorators. A project is
    identified by the path of its configuration file.
2.  **RuntimeConfig**: tool-level settings (``[tool.di_migrator.runtime]``) found by
    searching the working directory's parents, overridden by CLI arguments.
"""

import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from di_migrator.errors import ConfigError

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib

TOOL_SECTION = "di_migrator"

_DOTTED_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ProjectConfig(BaseModel):
  """
  Per-project migration settings.
  """

  model_config = ConfigDict(extra="forbid")

  sources: List[str] = Field(default_factory=lambda: ["."], description="Source roots relative to the config file.")
  exclude: List[str] = Field(default_factory=list, description="Glob patterns of files to skip.")
  framework: str = Field("di", description="Dotted module exporting the DI decorators.")
  directive_decorators: List[str] = Field(
    default_factory=lambda: ["component", "directive", "pipe"],
    description="Decorators marking directive/component-style classes.",
  )
  provider_decorators: List[str] = Field(
    default_factory=lambda: ["injectable"],
    description="Decorators marking provider-style classes.",
  )
  injectable_decorator: str = Field("injectable", description="Decorator added to undecorated declarations.")
  base_decorator: str = Field("directive", description="Abstract decorator added to undecorated directive bases.")
  ignored_bases: List[str] = Field(
    default_factory=list,
    description="Qualified names or module prefixes of external bases that never require DI.",
  )

  @field_validator("sources")
  @classmethod
  def validate_sources(cls, v: List[str]) -> List[str]:
    """
    Ensures at least one source root is configured.

    Raises:
        ValueError: If the list is empty.
    """
    if not v:
      raise ValueError("At least one source root is required.")
    return v

  @field_validator("framework")
  @classmethod
  def validate_framework(cls, v: str) -> str:
    """
    Ensures the framework is an importable dotted module path.

    Raises:
        ValueError: If the value is not a dotted identifier.
    """
    v_clean = v.strip()
    if not _DOTTED_NAME.match(v_clean):
      raise ValueError(f"Invalid framework module: '{v}'.")
    return v_clean

  @field_validator("directive_decorators", "provider_decorators")
  @classmethod
  def validate_decorator_names(cls, v: List[str]) -> List[str]:
    """
    Ensures decorator names are plain identifiers.

    Raises:
        ValueError: If a name is not an identifier.
    """
    for name in v:
      if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid decorator name: '{name}'.")
    return v

  @model_validator(mode="after")
  def validate_decorator_roles(self) -> "ProjectConfig":
    """
    Cross-checks the decorator lists.

    The added decorators must belong to their category, and no name may be both
    a directive and a provider decorator.
    """
    overlap = set(self.directive_decorators) & set(self.provider_decorators)
    if overlap:
      raise ValueError(f"Decorators cannot be both directive and provider decorators: {sorted(overlap)}")
    if self.injectable_decorator not in self.provider_decorators:
      raise ValueError(f"injectable_decorator '{self.injectable_decorator}' must be listed in provider_decorators.")
    if self.base_decorator not in self.directive_decorators:
      raise ValueError(f"base_decorator '{self.base_decorator}' must be listed in directive_decorators.")
    return self

  def qualified(self, name: str) -> str:
    """
    Returns the fully qualified name of a framework decorator.

    Args:
        name (str): The decorator name (e.g. 'injectable').

    Returns:
        str: e.g. 'di.injectable'.
    """
    return f"{self.framework}.{name}"

  @property
  def directive_names(self) -> List[str]:
    """Qualified names of all directive decorators."""
    return [self.qualified(n) for n in self.directive_decorators]

  @property
  def provider_names(self) -> List[str]:
    """Qualified names of all provider decorators."""
    return [self.qualified(n) for n in self.provider_decorators]

  def is_ignored_base(self, qualified_name: str) -> bool:
    """
    Checks whether an external base class is declared DI-neutral.

    Args:
        qualified_name (str): e.g. 'pydantic.BaseModel'.

    Returns:
        bool: True if matched exactly or by module prefix.
    """
    for entry in self.ignored_bases:
      if qualified_name == entry or qualified_name.startswith(entry + "."):
        return True
    return False


def parse_project_config(text: str) -> ProjectConfig:
  """
  Parses a ``pyproject.toml`` body into a ProjectConfig.

  A file without a ``[tool.di_migrator]`` table yields the defaults.

  Args:
      text (str): TOML content.

  Returns:
      ProjectConfig: The validated configuration.

  Raises:
      tomllib.TOMLDecodeError: If the TOML is malformed.
      pydantic.ValidationError: If the table has invalid values.
  """
  data = tomllib.loads(text)
  section = dict(data.get("tool", {}).get(TOOL_SECTION, {}))
  # The runtime sub-table belongs to the tool, not to the project
  section.pop("runtime", None)
  return ProjectConfig.model_validate(section)


def declares_tool_section(text: str) -> bool:
  """
  Checks whether a TOML document declares a ``[tool.di_migrator]`` table.

  Malformed documents are reported as declaring it when the header is present
  textually, so that the project is surfaced with its config error.

  Args:
      text (str): TOML content.

  Returns:
      bool: True if the project opts into migration.
  """
  try:
    data = tomllib.loads(text)
  except tomllib.TOMLDecodeError:
    return f"[tool.{TOOL_SECTION}" in text
  return TOOL_SECTION in data.get("tool", {})


def format_validation_error(error: ValidationError) -> List[str]:
  """
  Flattens a pydantic ValidationError into readable lines.

  Args:
      error: The validation error.

  Returns:
      List[str]: One message per error location.
  """
  lines = []
  for item in error.errors():
    loc = ".".join(str(p) for p in item["loc"]) or TOOL_SECTION
    lines.append(f"{loc}: {item['msg']}")
  return lines


class RuntimeConfig(BaseModel):
  """
  Tool-level settings for a migration run.
  """

  dry_run: bool = Field(False, description="If True, report changes without writing files.")
  verbose: bool = Field(False, description="If True, emit debug logging.")

  @classmethod
  def load(
    cls,
    dry_run: Optional[bool] = None,
    verbose: Optional[bool] = None,
    search_path: Optional[Path] = None,
  ) -> "RuntimeConfig":
    """
    Loads configuration from pyproject.toml and overrides with CLI arguments.

    Args:
        dry_run (Optional[bool]): Override for dry-run mode.
        verbose (Optional[bool]): Override for verbose logging.
        search_path (Optional[Path]): Directory to start searching for TOML config.

    Returns:
        RuntimeConfig: The fully resolved configuration object.
    """
    start_dir = search_path or Path.cwd()
    toml_config, _ = _load_toml_settings(start_dir)

    final_dry_run = dry_run if dry_run is not None else toml_config.get("dry_run", False)
    final_verbose = verbose if verbose is not None else toml_config.get("verbose", False)

    return cls(dry_run=final_dry_run, verbose=final_verbose)


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches parents for a 'pyproject.toml' declaring runtime settings.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The runtime table and the directory it was found in.

  Raises:
      ConfigError: If the nearest pyproject.toml cannot be parsed.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {toml_path}: {e}") from e

      tool_section = data.get("tool", {}).get(TOOL_SECTION, {})
      return tool_section.get("runtime", {}), parent

  return {}, None
