from .migrate import handle_migrate

__all__ = [
  "handle_migrate",
]
