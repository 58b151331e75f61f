"""
quotemaster/blueprints/catalog/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose catalog_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import catalog_bp  # noqa: F401
