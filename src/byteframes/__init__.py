"""
byteframes: package root

File: src/byteframes/__init__.py

Purpose
- Local persistence backend for the byteframes desktop application: settings,
  named layout snapshots and window geometry in one SQLite file.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
