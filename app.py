"""Flask application factory for the civic complaint intake API."""
import os
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from sqlalchemy.engine.url import make_url
from werkzeug.exceptions import HTTPException

from extensions import csrf, db, login_manager, migrate
from utils.ai_vision import build_vision_classifier
from utils.errors import CivicError
from utils.logger import init_logging
from utils.repository import current_storage, init_storage
from utils.sms_service import LoggingSmsSink


def _error_response(message: str, status: int, detail: Optional[str] = None):
    body = {"success": False, "message": message}
    if detail:
        body["error"] = detail
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(CivicError)
    def civic_error(error: CivicError):
        if error.status_code >= 500:
            app.logger.exception("Request failed", extra={"path": request.path, "method": request.method})
        else:
            app.logger.warning(
                "Request rejected",
                extra={"path": request.path, "method": request.method, "error": error.message},
            )
        return _error_response(error.message, error.status_code)

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return _error_response("Route not found", 404)

    @app.errorhandler(413)
    def too_large(error):
        app.logger.warning("413 Request Too Large", extra={"path": request.path})
        return _error_response("File exceeds size limits", 400)

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return _error_response(error.description or error.name, error.code or 500)
        app.logger.exception("500 Internal Server Error")
        detail = str(error) if app.config.get("DEBUG") else None
        return _error_response("Internal server error", 500, detail)


def ensure_database_exists(database_uri: str) -> None:
    """Make sure the parent directory of a SQLite database file exists."""
    url = make_url(database_uri)
    if url.drivername.startswith("sqlite") and url.database:
        os.makedirs(os.path.dirname(os.path.abspath(url.database)) or ".", exist_ok=True)


def create_app(config_name: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())
    if overrides:
        app.config.update(overrides)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    logger = init_logging(app)

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "basic"

    @login_manager.user_loader
    def load_identity(citizen_id):
        if not citizen_id:
            return None
        return current_storage().identities.get_by_citizen_id(str(citizen_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return _error_response("Verification required", 401)

    from routes import auth_bp, complaints_bp, main_bp

    # JSON API authenticated by OTP session, not form tokens.
    csrf.exempt(auth_bp)
    csrf.exempt(complaints_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(complaints_bp)

    register_error_handlers(app)

    app.extensions["civic_vision"] = build_vision_classifier(app.config, logger=logger)
    app.extensions["civic_sms"] = LoggingSmsSink(logger=logger)
    init_storage(app)

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, use_reloader=False)
