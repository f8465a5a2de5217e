import click
import sqlalchemy as sa
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from credentials.clock import SystemClock
from credentials.directory import normalize_email
from credentials.dispatch import EmailDispatcher
from credentials.errors import CredentialError
from credentials.policy import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER
from models import db
from models.user import User, Role
from routes import health_bp, auth_bp, attendance_bp, audit_bp
from security.csrf import require_csrf
from utils.auth_context import load_current_user
from utils.seed import seed_roles


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Client IPs come from X-Forwarded-For only behind this many trusted proxies
    proxy_hops = app.config.get("TRUSTED_PROXY_HOPS", 0)
    if proxy_hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_hops, x_proto=proxy_hops)

    # Collaborators swapped out in tests
    app.extensions["clock"] = SystemClock()
    app.extensions["dispatcher"] = EmailDispatcher()

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # before the first `flask db upgrade` there is nothing to seed
        if sa.inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.errorhandler(CredentialError)
    def _credential_error(exc):
        return jsonify(exc.to_dict()), exc.status

    @app.before_request
    def _load_user():
        load_current_user()

    CSRF_EXEMPT_PATHS = {
    "/auth/otp/request",
    "/auth/otp/verify",
    "/health",
    }

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Exempt auth bootstrap endpoints
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        # Codes and sessions must never be cached
        resp.headers["Cache-Control"] = "no-store"
        return resp

    register_cli(app)

    return app

#-------------------------

def _get_role(name: str) -> Role:
    role = Role.query.filter_by(name=name).first()
    if not role:
        role = Role(name=name)
        db.session.add(role)
        db.session.flush()
    return role


ROLE_CHOICES = click.Choice([ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN], case_sensitive=False)


def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--role", "role_name", default=ROLE_STUDENT, show_default=True,
                  type=ROLE_CHOICES)
    @click.option("--name", "full_name", default=None)
    def create_user(email, role_name, full_name):
        """Add a user to the directory (bootstrap)."""
        email = normalize_email(email)
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        user = User(email=email, full_name=full_name)
        user.roles.append(_get_role(role_name.upper()))
        db.session.add(user)
        db.session.commit()
        click.echo(f"{user.email} created as {role_name.upper()}")

    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role_name", type=ROLE_CHOICES)
    def grant_role(email, role_name):
        """Give an existing user another role, e.g. ADMIN (bootstrap)."""
        user = User.query.filter_by(email=normalize_email(email)).first()
        if not user:
            click.echo("User not found")
            return

        role = _get_role(role_name.upper())
        if role not in user.roles:
            user.roles.append(role)
        db.session.commit()

        click.echo(f"{user.email} granted {role.name}")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
