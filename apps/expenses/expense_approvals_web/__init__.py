"""Expense approvals Flask application factory."""

from __future__ import annotations

import logging
from pathlib import Path
import sys
from typing import Any

import click
from flask import Flask, current_app, g


def _discover_project_root() -> Path:
    """Return the repository root by walking up the filesystem.

    The application may run from a source checkout where the shared
    ``packages`` namespace is not installed. This helper searches parent
    directories for common project markers so ``packages.expense_workflow``
    stays importable in local and containerised environments alike.

    Returns:
        Path: Directory containing ``pyproject.toml``. Falls back to the
        package directory when no marker is present.
    """

    current = Path(__file__).resolve().parent
    selected = current
    for candidate in [current] + list(current.parents):
        if (candidate / "pyproject.toml").exists():
            selected = candidate
    return selected


PROJECT_ROOT = _discover_project_root()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))


from packages.expense_workflow import ActionDispatcher, OrganizationRole  # noqa: E402

from .auth import login_manager  # noqa: E402
from .config import AppConfig, load_config  # noqa: E402
from .database import create_db_engine, init_schema  # noqa: E402
from .directory import SqlDirectory  # noqa: E402
from .repositories import ExpensesRepository  # noqa: E402


def create_app(config: AppConfig | None = None) -> Flask:
    """Build and configure the expense approvals Flask application.

    Args:
        config: Optional :class:`AppConfig` override. When ``None`` the helper
            loads configuration via :func:`load_config`, which honours the
            ``EXPENSES_*`` environment variables.

    Returns:
        Flask: Fully initialised application. The instance carries a
        SQLAlchemy engine stored on ``app.config['DB_ENGINE']`` for
        downstream repositories.

    External Dependencies:
        * Calls :func:`load_config` to resolve runtime settings.
        * Uses :func:`create_db_engine` and :func:`init_schema` to prepare the
          database schema on startup.
    """

    app = Flask(__name__, instance_relative_config=True)
    app_config = config or load_config()
    app.config.update(
        SECRET_KEY=app_config.secret_key,
        MAX_CONTENT_LENGTH=app_config.max_content_length,
        ACTOR_HEADER=app_config.actor_header,
    )
    app.logger.setLevel(app_config.log_level)
    logging.getLogger("packages.expense_workflow").setLevel(app_config.log_level)

    engine = create_db_engine(app_config.database_url)
    init_schema(engine)
    app.config["DB_ENGINE"] = engine

    login_manager.init_app(app)

    from .blueprints.expenses import expenses_bp

    app.register_blueprint(expenses_bp)

    @app.teardown_appcontext
    def teardown(_: Any) -> None:
        g.pop("expenses_repo", None)
        g.pop("expense_dispatcher", None)

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Initialize the database tables."""

        init_schema(engine)
        click.echo("Database initialized.")

    @app.cli.command("grant-role")
    @click.argument("organization_id")
    @click.argument("user_id")
    @click.option(
        "--role",
        type=click.Choice([role.value for role in OrganizationRole]),
        default=OrganizationRole.MEMBER.value,
        show_default=True,
    )
    def grant_role_command(organization_id: str, user_id: str, role: str) -> None:
        """Add USER_ID to ORGANIZATION_ID with the given role."""

        SqlDirectory(engine).set_role(organization_id, user_id, OrganizationRole(role))
        click.echo(f"{user_id} is now {role} of {organization_id}.")

    return app


def get_repository() -> ExpensesRepository:
    """Return a cached repository bound to the active Flask request.

    External Dependencies:
        * Reads ``current_app.config['DB_ENGINE']`` set during
          :func:`create_app`.
    """

    if not hasattr(g, "expenses_repo"):
        engine = current_app.config["DB_ENGINE"]
        g.expenses_repo = ExpensesRepository(engine)
    return g.expenses_repo


def get_dispatcher() -> ActionDispatcher:
    """Return the :class:`ActionDispatcher` for the active request."""

    if not hasattr(g, "expense_dispatcher"):
        directory = SqlDirectory(current_app.config["DB_ENGINE"])
        g.expense_dispatcher = ActionDispatcher(get_repository(), directory)
    return g.expense_dispatcher


__all__ = ["create_app", "AppConfig", "get_dispatcher", "get_repository"]
