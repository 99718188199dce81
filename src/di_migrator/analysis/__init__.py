"""
Analysis Package.

Contains the program front-end:
- Project configuration loading and module discovery
- LibCST parsing with position metadata
- Project-wide name and type resolution
- Config, syntactic and structural diagnostics
"""
