"""
dataplane-config — package root

File: src/dataplane_config/__init__.py
Last updated: 2026-10-19

Purpose
- Package root for the dataplane agent's configuration resolution engine.

What should be included in this file
- Package docstring and version export.
- Import boundary rules: avoid importing heavy submodules at import time.

Functional requirements
- Must not have side effects at import time (no source collection, no logging init).

Non-functional requirements
- Keep import time fast; the parameter registry is built lazily on first use.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
