import logging
import os
import time
import uuid

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from cli import register_commands
from config import Config
from extensions import db, login_manager, migrate
from logging_config import setup_logging
from models import User, ensure_schema
from startup import run_startup_tasks
from workflow.errors import (
    CapabilityError,
    GuardFailedError,
    HasDependentsError,
    NotFoundError,
    NumberingExhaustedError,
    SelfDeleteError,
    ValidationError,
    WorkflowError,
)

# HTTP status used when a workflow error escapes a view unhandled.
WORKFLOW_ERROR_STATUS = {
    CapabilityError: 403,
    NotFoundError: 404,
    GuardFailedError: 409,
    SelfDeleteError: 409,
    HasDependentsError: 409,
    ValidationError: 422,
    NumberingExhaustedError: 503,
}


def _warn_insecure_defaults(app: Flask) -> None:
    """Emit warnings when sensitive defaults are still in use."""

    secret_key = app.config.get("SECRET_KEY")
    if secret_key == "secret-key-change-me":
        app.logger.warning(
            "SECRET_KEY is using the placeholder value; please set SECRET_KEY "
            "in the environment for production deployments."
        )

    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if db_uri.startswith("sqlite:///") and "DATABASE_URL" not in os.environ:
        app.logger.warning(
            "DATABASE_URL is not set; application is falling back to the local "
            "SQLite database. Configure a production database via DATABASE_URL."
        )


def _is_production_environment() -> bool:
    """Return True when running in a production-like environment."""

    return os.environ.get("APP_ENV") == "production" or os.environ.get("FLASK_ENV") == "production"


def _workflow_error_status(error: WorkflowError) -> int:
    for error_class, status_code in WORKFLOW_ERROR_STATUS.items():
        if isinstance(error, error_class):
            return status_code
    return 400


def create_app(config_class=Config) -> Flask:
    """Build the Flask application that hosts the procurement workflow."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logging(app)

    _warn_insecure_defaults(app)

    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        if app.config.get("AUTO_SCHEMA_BOOTSTRAP"):
            ensure_schema()
        run_startup_tasks()

    if _is_production_environment():
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    @login_manager.user_loader
    def load_user(user_id: str):
        """Resolve the session user; deactivated accounts are treated as logged out."""
        try:
            user_id_int = int(user_id)
        except (TypeError, ValueError):
            return None

        user = db.session.get(User, user_id_int)
        if user is None or not user.is_active:
            return None
        return user

    def _log_request_summary(status_code: int) -> None:
        request_id = getattr(g, "request_id", None)
        start_time = getattr(g, "request_start_time", None)

        duration_ms = None
        if start_time is not None:
            duration_ms = (time.perf_counter() - start_time) * 1000

        app.logger.info(
            "request completed",
            extra={
                "request_id": request_id,
                "status_code": status_code,
                "duration_ms": int(duration_ms) if duration_ms is not None else None,
            },
        )

    @app.before_request
    def attach_request_context() -> None:
        g.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        g.request_start_time = time.perf_counter()

    @app.after_request
    def append_request_id(response):
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        _log_request_summary(response.status_code)
        return response

    @app.get("/healthz")
    def healthz():
        return jsonify(status="ok")

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(error: WorkflowError):
        status_code = _workflow_error_status(error)
        app.logger.log(
            logging.WARNING if status_code >= 500 else logging.INFO,
            "workflow error %s: %s",
            error.code,
            error,
        )
        response = jsonify(error.to_dict())
        response.status_code = status_code
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        return response

    @app.errorhandler(Exception)
    def handle_exception(error):
        if not isinstance(error, HTTPException):
            app.logger.exception("Unhandled exception", exc_info=error)

        response = error.get_response() if isinstance(error, HTTPException) else app.make_response(("Internal Server Error", 500))
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        return response

    register_commands(app)

    return app


app = create_app()

if __name__ == "__main__":
    app.run(
        host=os.environ.get("FLASK_RUN_HOST", "127.0.0.1"),
        debug=app.config.get("DEBUG", False),
    )
