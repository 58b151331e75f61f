"""
quotemaster/blueprints/price_lists/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose price_lists_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import price_lists_bp  # noqa: F401
