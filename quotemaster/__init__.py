"""
quotemaster/__init__.py

Flask application factory for QuoteMaster, the procurement quotation
comparison and price-resolution service.

- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- JSON API only; every blueprint answers with JSON or a file download.
- UI is never trusted; server-side access control is enforced.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask_login import current_user
from flask_wtf.csrf import CSRFError

from .errors import QuoteMasterError
from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import readonly_guard


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logger = logging.getLogger("quotemaster")
    logger.setLevel(level)
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"code": "unauthenticated", "message": "Login required"}), 401

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _readonly_guard_hook():
        """
        Users without the manage capability cannot POST/PUT/PATCH/DELETE.

        This is a safety net. Services still check the Actor they receive.
        """
        return readonly_guard()

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(QuoteMasterError)
    def _domain_error(err: QuoteMasterError):
        return jsonify(err.to_dict()), err.http_status

    @app.errorhandler(CSRFError)
    def _csrf_error(err: CSRFError):
        return jsonify({"code": "csrf_error", "message": err.description}), 400

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.catalog import catalog_bp
    from .blueprints.comparison import comparison_bp
    from .blueprints.price_lists import price_lists_bp
    from .blueprints.quotations import quotations_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(comparison_bp)
    app.register_blueprint(price_lists_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo products, suppliers and a kitchen team."""
        from .seed import seed_demo_data

        seed_demo_data()
        click.echo("Demo master data seeded.")

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.argument("password")
    def create_admin_command(username: str, password: str):
        """Create (or reset) an admin user."""
        user = User.query.filter_by(username=username).first()
        if user is None:
            user = User(username=username, full_name=username)
            db.session.add(user)
        user.is_admin = True
        user.can_manage_quotations = True
        user.is_active = True
        user.set_password(password)
        db.session.commit()
        click.echo(f"Admin '{username}' is ready.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        return jsonify(
            {
                "app": app.config.get("APP_NAME", "QuoteMaster"),
                "authenticated": bool(current_user.is_authenticated),
            }
        )

    return app
