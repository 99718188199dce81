"""
Core Package.

Contains the migration logic:
- Declaration Collector
- Undecorated Classes Transform
- Import Manager and Update Recorder
- Migration Runner
"""
