import logging
import os
from logging.handlers import RotatingFileHandler

import click
from flask import Flask, jsonify

from config.config import Config
from extensions import db, login_manager, migrate
from services.exceptions import (
    AcademicRecordsError, AuthorizationError, NotFoundError,
    StoreUnavailableError, StudentHasMarksError, ValidationError
)

# Route Imports
from routes.auth_routes import auth_bp
from routes.admin_routes import admin_bp
from routes.marks_routes import marks_bp
from routes.student_routes import student_bp

# Model Imports
from models.user import User

ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (StudentHasMarksError, 409),
    (StoreUnavailableError, 503),
]


def configure_logging(app):
    if getattr(app, "_logging_configured", False):
        return
    level = app.config.get("LOG_LEVEL", "INFO")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(funcName)s: %(message)s")

    # Service modules log under their own names; hang handlers on the root logger.
    root = logging.getLogger()
    root.setLevel(level)
    app._logging_configured = True
    if any(getattr(h, "_records_handler", False) for h in root.handlers):
        return

    console = logging.StreamHandler()
    console._records_handler = True
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "app.log"), maxBytes=2_000_000, backupCount=5
        )
        file_handler.setLevel(level)
        file_handler._records_handler = True
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def register_error_handlers(app):
    @app.errorhandler(AcademicRecordsError)
    def handle_records_error(exc):
        status = 500
        for exc_type, code in ERROR_STATUS:
            if isinstance(exc, exc_type):
                status = code
                break
        if status >= 500:
            app.logger.error("Request failed: %s", exc.message)
        return jsonify({"error": exc.message, "code": exc.error_code}), status


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Initialize Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Login required"}), 401

    # Register Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(marks_bp)
    app.register_blueprint(student_bp)

    register_error_handlers(app)

    @app.cli.command("seed")
    def seed_command():
        """Seed roles, class-sections and subjects."""
        from utils.seed_data import run_seed
        run_seed()
        click.echo("Seed data verified")

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=True)
