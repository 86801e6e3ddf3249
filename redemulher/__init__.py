from __future__ import annotations

import logging

import click
from flask import Flask, redirect, render_template, url_for
from flask_login import current_user, login_required

from redemulher.core.auth import auth_bp
from redemulher.core.config import Config
from redemulher.core.extensions import db, login_manager, migrate
from redemulher.core.logging import configure_logging
from redemulher.core.models import AppRole, User, seed_demo_data
from redemulher.core.permissions import require_approved
from redemulher.core.users import ensure_admin, usuarios_bp
from redemulher.core.utils import format_date, format_datetime, format_nup, local_today, month_label
from redemulher.rede import rede_bp
from redemulher.rede.reports import format_count, format_pct, format_signed

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.context_processor(_template_context)
    app.jinja_env.filters.update(
        data=format_date,
        data_hora=format_datetime,
        pct=format_pct,
        contagem=format_count,
        sinal=format_signed,
        nup=format_nup,
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(usuarios_bp)
    app.register_blueprint(rede_bp)

    register_cli(app)
    register_routes(app)
    logger.info("Aplicação iniciada (env=%s)", app.config.get("APP_ENV"))
    return app


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return redirect(url_for("dashboard_page"))

    @app.get("/dashboard")
    @login_required
    @require_approved
    def dashboard_page():
        from redemulher.rede.services import dashboard_data

        return render_template("dashboard.html", data=dashboard_data())

    @app.get("/aguardando-aprovacao")
    @login_required
    def aguardando_aprovacao():
        if current_user.is_approved:
            return redirect(url_for("dashboard_page"))
        return render_template("aguardando.html")

    @app.errorhandler(401)
    def unauthorized(_error):
        return redirect(url_for("auth.login"))

    @app.errorhandler(403)
    def forbidden(_error):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users and records."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Login email.")
    @click.option("--password", required=True, help="Initial password.")
    @click.option("--name", "full_name", default="Administrador", help="Display name.")
    def create_admin(email: str, password: str, full_name: str) -> None:
        """Create an administrator, or promote an existing account."""
        try:
            user = ensure_admin(email, password, full_name)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Admin ready: {user.email}")


def _template_context() -> dict[str, object]:
    return {
        "AppRole": AppRole,
        "today": local_today(),
        "month_label": month_label,
    }


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
