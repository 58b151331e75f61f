"""
Application configuration.
This module defines the configuration settings for the QuoteMaster Flask application, including database
connection, secret key, logging level and import limits. Sensitive values come from environment variables with
development defaults. In production, set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'quotemaster.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (JSON clients send the token in the X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Quotation defaults
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "VND")
    MAX_IMPORT_FILES = int(os.environ.get("MAX_IMPORT_FILES", "20"))

    APP_NAME = "QuoteMaster"


class TestConfig(Config):
    """In-memory database, no CSRF. Used by the pytest suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "DEBUG"
