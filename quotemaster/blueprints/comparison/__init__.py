"""
quotemaster/blueprints/comparison/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose comparison_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import comparison_bp  # noqa: F401
