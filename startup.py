"""Database upgrades applied while the application boots."""

import os
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import inspect, text

from extensions import db

STARTUP_ADVISORY_LOCK_ID = 74290315

REQUIRED_TABLES = ("users", "purchase_orders", "cost_estimates", "cost_estimate_items")


class StartupMigrationError(RuntimeError):
    """The database could not be brought up to the head revision."""


def migrations_directory() -> str:
    return os.path.join(current_app.root_path, "migrations")


def missing_tables() -> list[str]:
    existing = set(inspect(db.engine).get_table_names())
    return [table for table in REQUIRED_TABLES if table not in existing]


@contextmanager
def _migration_lock():
    """Hold a PostgreSQL advisory lock so only one worker upgrades at a time."""
    if db.engine.dialect.name != "postgresql":
        yield
        return

    current_app.logger.info("Acquiring startup advisory lock %s.", STARTUP_ADVISORY_LOCK_ID)
    db.session.execute(
        text("SELECT pg_advisory_lock(:lock_id)"),
        {"lock_id": STARTUP_ADVISORY_LOCK_ID},
    )
    try:
        yield
    finally:
        db.session.execute(
            text("SELECT pg_advisory_unlock(:lock_id)"),
            {"lock_id": STARTUP_ADVISORY_LOCK_ID},
        )
        db.session.commit()
        current_app.logger.info("Released startup advisory lock.")


def run_startup_migrations() -> None:
    """Upgrade to the head revision. Any failure aborts application startup."""
    directory = migrations_directory()
    if not os.path.exists(os.path.join(directory, "env.py")):
        raise StartupMigrationError(f"No migration environment found in {directory}")

    from flask_migrate import upgrade

    try:
        upgrade(directory=directory)
    except Exception as exc:
        current_app.logger.exception("DB migration upgrade failed at startup")
        raise StartupMigrationError("DB migration upgrade failed at startup") from exc

    missing = missing_tables()
    if missing:
        raise StartupMigrationError("Tables missing after upgrade: " + ", ".join(missing))
    current_app.logger.info("DB migrations applied at startup")


def run_startup_tasks() -> None:
    if not current_app.config.get("RUN_STARTUP_MIGRATIONS"):
        current_app.logger.info("Skipping startup migrations; RUN_STARTUP_MIGRATIONS is off.")
        return

    with _migration_lock():
        run_startup_migrations()
