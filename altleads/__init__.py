import os
import logging

import click
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from werkzeug.security import generate_password_hash

from altleads.config import config_by_name
from altleads.errors import AltLeadsError
from altleads.extensions import db, migrate, login_manager, csrf, limiter

FUNCTIONS_PREFIX = "/functions/v1"


def _cors_headers(app, response):
    response.headers["Access-Control-Allow-Origin"] = app.config.get("CORS_ALLOW_ORIGIN", "*")
    response.headers["Access-Control-Allow-Methods"] = "POST, GET, OPTIONS, PUT, DELETE"
    response.headers["Access-Control-Allow-Headers"] = (
        "authorization, x-client-info, apikey, content-type"
    )
    return response


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from altleads import models  # noqa: F401

    # --- Change feed (publishes committed row changes) ---
    from altleads.realtime import init_realtime
    init_realtime(app, db)

    # --- Register blueprints ---
    from altleads.blueprints.auth import auth_bp
    from altleads.blueprints.prospects import prospects_bp
    from altleads.blueprints.rtne import rtne_bp
    from altleads.blueprints.admin import admin_bp
    from altleads.blueprints.functions import functions_bp
    from altleads.blueprints.chrome_extension import chrome_bp
    from altleads.blueprints.sim import sim_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(prospects_bp)
    app.register_blueprint(rtne_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(chrome_bp)
    app.register_blueprint(sim_bp)

    # Exempt edge functions from CSRF: bearer-token auth, no session cookie
    csrf.exempt(functions_bp)
    # Exempt Chrome extension endpoints from CSRF: called from the extension
    csrf.exempt(chrome_bp)

    # --- Error handlers ---
    @app.errorhandler(AltLeadsError)
    def handle_app_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            app.logger.error(f"{request.method} {request.path} failed: {e.message} ({e.details})")
        else:
            app.logger.info(f"{request.method} {request.path} -> {e.status_code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({"error": "CSRF token missing or invalid"}), 400

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(404)
    def not_found(e):
        response = jsonify({"error": "Not found"})
        response.status_code = 404
        if request.path.startswith(FUNCTIONS_PREFIX):
            _cors_headers(app, response)
        return response

    @app.errorhandler(405)
    def method_not_allowed(e):
        # No blueprint matched, so the blueprint CORS hook never runs.
        response = jsonify({"error": "Method not allowed"})
        response.status_code = 405
        if request.path.startswith(FUNCTIONS_PREFIX):
            _cors_headers(app, response)
        return response

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests. Please try again later."}), 429

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Permissions Policy (restrict browser features)
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        # JSON-only API: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@altleads.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--name", default="Admin", help="Display name")
    def seed_admin(email, password, name):
        """Create an admin identity with its profile.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from altleads.models.user import AuthUser, User

        email = email.strip().lower()
        identity = AuthUser.query.filter_by(email=email).first()
        if identity:
            click.echo(f"Admin user already exists: {email}")
        else:
            identity = AuthUser(
                email=email,
                password_hash=generate_password_hash(password),
                user_metadata={"full_name": name, "project_name": "ADMIN", "role": "admin"},
            )
            db.session.add(identity)
            db.session.flush()
            click.echo(f"Created admin user: {email}")

        profile = db.session.get(User, identity.id)
        if profile is None:
            db.session.add(User(
                id=identity.id,
                email=email,
                name=name,
                role="admin",
                project_name="ADMIN",
                status="active",
            ))
        else:
            profile.role = "admin"
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo(f"  Admin:     {email} / {password}")
        click.echo(f"  User ID:   {identity.id}")
        click.echo("=" * 60)

    @app.cli.command("create-extension-user")
    @click.option("--email", required=True, help="Extension account email")
    @click.option("--password", required=True, help="Extension account password")
    def create_extension_user(email, password):
        """Create a Chrome extension account.

        Usage:
            flask create-extension-user --email agent@example.com --password s3cret
        """
        from altleads.models.chrome_extension import ChromeExtensionUser

        email = email.strip().lower()
        if ChromeExtensionUser.query.filter_by(email=email).first():
            click.echo(f"Extension user already exists: {email}")
            return
        user = ChromeExtensionUser(
            email=email, password_hash=generate_password_hash(password)
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created extension user: {email} (id: {user.id})")

    @app.cli.command("watch-table")
    @click.argument("table")
    @click.option("--filter", "filter_expr", default=None, help="e.g. prospect_id=eq.42")
    @click.option("--event", default="*", type=click.Choice(["*", "INSERT", "UPDATE", "DELETE"]))
    @click.option("--port", default=5001, help="Port for the dev server")
    def watch_table(table, filter_expr, event, port):
        """Serve the app with a live mirror of TABLE, echoing every change.

        The change feed is in-process, so the mirror sees writes made
        through this server.

        Usage:
            flask watch-table dispositions --filter prospect_id=eq.42
        """
        from altleads.models import as_dict
        from altleads.realtime import RealtimeSync, get_feed

        mapper = next(
            (m for m in db.Model.registry.mappers if m.local_table.name == table),
            None,
        )
        if mapper is None:
            raise click.BadParameter(f"Unknown table: {table}", param_hint="TABLE")

        def echo(kind):
            def _echo(row):
                click.echo(f"{kind:<7} {row}")
            return _echo

        sync = RealtimeSync(
            get_feed(app),
            table,
            filter=filter_expr,
            event=event,
            on_insert=echo("INSERT"),
            on_update=echo("UPDATE"),
            on_delete=echo("DELETE"),
            reconnect_delay=app.config["REALTIME_RECONNECT_DELAY"],
        )
        sync.load(as_dict(obj) for obj in db.session.query(mapper.class_).all())
        click.echo(f"Watching {sync.channel_name}: {len(sync.data)} row(s) loaded")

        with sync:
            app.run(port=port, use_reloader=False)
