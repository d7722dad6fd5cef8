"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load the auth identity by ID from session. Imports lazily to avoid circular deps."""
    from altleads.models.user import AuthUser

    return db.session.get(AuthUser, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    """JSON clients get a 401 instead of a redirect to a login page."""
    return jsonify({"error": "Unauthorized"}), 401
