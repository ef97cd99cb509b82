import logging
from logging.config import fileConfig
from pathlib import Path

from flask import current_app
from alembic import context

# Alembic Config object (reads alembic.ini)
config = context.config


def _init_logging():
    ini = config.config_file_name
    if ini and Path(ini).exists():
        fileConfig(ini, disable_existing_loggers=False)
        return
    logging.basicConfig(level=logging.INFO)


_init_logging()
logger = logging.getLogger("alembic.env")


def get_engine():
    try:
        # Flask-SQLAlchemy < 3.x
        return current_app.extensions["migrate"].db.get_engine()
    except (TypeError, AttributeError):
        # Flask-SQLAlchemy >= 3.x
        return current_app.extensions["migrate"].db.engine


def get_engine_url():
    try:
        return get_engine().url.render_as_string(hide_password=False).replace("%", "%%")
    except AttributeError:
        return str(get_engine().url).replace("%", "%%")


# Alembic needs a URL in offline mode
config.set_main_option("sqlalchemy.url", get_engine_url())

target_db = current_app.extensions["migrate"].db


def get_metadata():
    # Registers every table on the metadata before comparing.
    import models  # noqa: F401

    if hasattr(target_db, "metadatas"):
        return target_db.metadatas[None]
    return target_db.metadata


def run_migrations_offline():
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode."""

    # Prevent no-op file creation
    def process_revision_directives(context_, revision, directives):
        if getattr(config.cmd_opts, "autogenerate", False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info("No changes in schema detected.")

    conf_args = current_app.extensions["migrate"].configure_args
    conf_args = {
        **conf_args,
        "process_revision_directives": conf_args.get(
            "process_revision_directives", process_revision_directives
        ),
        "compare_type": True,
        "render_as_batch": conf_args.get("render_as_batch", True),
        "target_metadata": get_metadata(),
    }

    connectable = get_engine()
    with connectable.connect() as connection:
        context.configure(connection=connection, **conf_args)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
