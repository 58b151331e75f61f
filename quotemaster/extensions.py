"""
Flask extension singletons.

Created unbound here so models, services and blueprints can import them
without importing the app; create_app() binds each one.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

login_manager = LoginManager()
# JSON API: no login page to redirect to; create_app installs a 401 handler
login_manager.login_view = None
login_manager.session_protection = "strong"
