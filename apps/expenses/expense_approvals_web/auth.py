"""Actor resolution for requests.

Sessions are issued upstream; the gateway forwards the authenticated user
id in a header (``X-Actor-Id`` by default). Flask-Login's request loader
turns that header into :data:`flask_login.current_user`.
"""

from __future__ import annotations

from typing import Optional

from flask import Request, current_app
from flask_login import LoginManager, UserMixin

from packages.expense_workflow import Unauthorized

login_manager = LoginManager()


class Actor(UserMixin):
    """Authenticated caller identified only by an opaque id."""

    def __init__(self, actor_id: str):
        self.id = actor_id

    def __repr__(self) -> str:
        return f"Actor({self.id!r})"


@login_manager.user_loader
def load_user(user_id: str) -> Optional[Actor]:
    return Actor(user_id) if user_id else None


@login_manager.request_loader
def load_actor_from_request(request: Request) -> Optional[Actor]:
    """Build the actor from the configured identity header."""

    header = current_app.config.get("ACTOR_HEADER", "X-Actor-Id")
    actor_id = (request.headers.get(header) or "").strip()
    if not actor_id:
        return None
    return Actor(actor_id)


@login_manager.unauthorized_handler
def unauthorized() -> None:
    raise Unauthorized()
