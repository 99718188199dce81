"""
Tests for Centralized Logging Utility and Injection Mechanics.

Verifies:
1. Singleton Proxy correctness.
2. Injection capabilities (`set_console`).
3. Standard logging wrappers and verbosity switching.
"""

import io
import logging

from rich.console import Console

from di_migrator.utils.console import (
  console,
  log_error,
  log_info,
  log_success,
  log_warning,
  reset_console,
  set_console,
  set_verbosity,
)


def _recording_console():
  return Console(record=True, width=200, file=io.StringIO())


def test_console_singleton_proxy():
  """
  Verify `console` acts as a proxy to a real Rich console.
  """
  assert callable(console.print)
  assert hasattr(console, "export_text")
  assert isinstance(console.backend, Console)


def test_custom_console_injection():
  """
  Verify we can inject a capturing console and retrieve logs.
  """
  capture = _recording_console()
  set_console(capture)

  log_info("Captured Log")

  output = capture.export_text()
  assert "Captured Log" in output
  assert "ℹ️" in output


def test_reset_functionality():
  temp = _recording_console()
  set_console(temp)
  assert console.backend is temp

  reset_console()
  assert console.backend is not temp
  assert isinstance(console.backend, Console)


def test_logging_wrappers_prefixes():
  capture = _recording_console()
  set_console(capture)

  log_success("SuccessText")
  log_warning("WarningText")
  log_error("ErrorText")

  output = capture.export_text()
  assert "✅ SuccessText" in output
  assert "⚠️  WarningText" in output
  assert "❌ ErrorText" in output
  assert "SUCCESS" in output


def test_verbosity_controls_debug_records():
  """
  Verify `set_verbosity` toggles DEBUG records of module loggers.
  """
  capture = _recording_console()
  set_console(capture)
  logger = logging.getLogger("di_migrator.test")

  logger.debug("hidden detail")
  set_verbosity(True)
  logger.debug("shown detail")
  set_verbosity(False)

  output = capture.export_text()
  assert "hidden detail" not in output
  assert "shown detail" in output


def test_proxy_getattr_delegation():
  """
  Verify that attributes not defined on the proxy fall through to the backend.
  """
  set_console(_recording_console())
  assert console.width == 200
