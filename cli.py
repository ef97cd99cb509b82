from __future__ import annotations

import click
from flask import Flask
from flask.cli import with_appcontext

from extensions import db
from models import User, ensure_schema
from permissions import DEFAULT_ROLE, ROLES
from workflow.errors import ValidationError
from workflow.transaction import atomic
from workflow.users import build_user


@click.command("init-db")
@with_appcontext
def init_db() -> None:
    """Create any missing tables."""

    ensure_schema()
    click.echo("Database tables created.")


@click.command("create-user")
@click.option("--name", required=True)
@click.option("--email", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--role", type=click.Choice(ROLES), default=DEFAULT_ROLE, show_default=True)
@with_appcontext
def create_user(name: str, email: str, password: str, role: str) -> None:
    """Create an account without an acting user (operator bootstrap)."""

    try:
        with atomic():
            user = build_user(
                {"name": name, "email": email, "password": password, "role": role}
            )
    except ValidationError as exc:
        for field, message in sorted(exc.errors.items()):
            click.echo(f"{field}: {message}", err=True)
        raise click.exceptions.Exit(1)

    click.echo(f"Created user {user.email} ({user.role}) with id {user.id}.")


@click.command("deactivate-user")
@click.option("--email", required=True)
@with_appcontext
def deactivate_user(email: str) -> None:
    """Deactivate an account so it can no longer act or log in."""

    user = User.query.filter(User.email == email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}.")

    if not user.is_active:
        click.echo(f"User {user.email} is already inactive.")
        return

    user.is_active = False
    db.session.commit()
    click.echo(f"Deactivated user {user.email}.")


def register_commands(app: Flask) -> None:
    app.cli.add_command(init_db)
    app.cli.add_command(create_user)
    app.cli.add_command(deactivate_user)
