"""Configuration helpers for the expense approvals web application."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class AppConfig:
    """Settings loaded from environment variables."""

    database_url: str
    secret_key: str
    max_content_length: int
    actor_header: str = "X-Actor-Id"
    log_level: str = "INFO"


def load_config() -> AppConfig:
    """Create an :class:`AppConfig` instance from environment variables."""

    instance_dir = Path("instance")
    instance_dir.mkdir(parents=True, exist_ok=True)
    database = os.getenv(
        "EXPENSES_DATABASE", "sqlite:///" + str(instance_dir / "expenses.db")
    )
    max_content_length = int(os.getenv("EXPENSES_MAX_CONTENT_LENGTH", "1048576"))
    secret_key = os.getenv("EXPENSES_SECRET_KEY")
    if not secret_key:
        logging.getLogger("expense_approvals.config").warning(
            "EXPENSES_SECRET_KEY is not set; falling back to the development key."
        )
        secret_key = "development"
    return AppConfig(
        database_url=database,
        secret_key=secret_key,
        max_content_length=max_content_length,
        actor_header=os.getenv("EXPENSES_ACTOR_HEADER", "X-Actor-Id"),
        log_level=os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper(),
    )
