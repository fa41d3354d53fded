from __future__ import annotations

import os
from pathlib import Path

from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.pool import QueuePool, StaticPool

from config import Config, get_database_uri_from_env

from .cli import register_cli_commands
from .errors import MissionError
from .extensions import cache, compress
from .models import db, init_db
from .routes.missions import bp as missions_bp
from .routes.participations import bp as participations_bp
from .routes.pricing import bp as pricing_bp
from .utils.logger import LOG_FILENAME, configure_logging

migrate = Migrate()


def _mask_database_uri(uri: str) -> str:
    if "@" not in uri or "://" not in uri:
        return uri
    scheme, rest = uri.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def _engine_options(app: Flask) -> dict:
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {}))
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "") or ""

    if database_uri.startswith("sqlite"):
        # SQLite (especially :memory:) does not accept pool sizing parameters.
        for key in ("pool_size", "max_overflow", "pool_recycle"):
            options.pop(key, None)

    poolclass = options.get("poolclass")
    if poolclass:
        try:
            is_static_pool = issubclass(poolclass, StaticPool)
            is_queue_pool = issubclass(poolclass, QueuePool)
        except TypeError:
            is_static_pool = False
            is_queue_pool = False

        if is_static_pool:
            for key in ("pool_size", "max_overflow", "pool_recycle"):
                options.pop(key, None)
        elif not is_queue_pool:
            options.pop("pool_size", None)
            options.pop("max_overflow", None)
    return options


def _enable_sqlite_savepoints(app: Flask) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINTs nest correctly."""
    if not (app.config.get("SQLALCHEMY_DATABASE_URI") or "").startswith("sqlite"):
        return

    with app.app_context():
        engine = db.engine

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(MissionError)
    def handle_mission_error(error: MissionError):
        if error.http_status >= 500:
            app.logger.warning("[%s] %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"ok": False, "error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return (
            jsonify({"ok": False, "error": "method_not_allowed", "message": "Method not allowed"}),
            405,
        )

    @app.errorhandler(500)
    def handle_internal_error(error):  # pragma: no cover - last resort
        app.logger.exception("[500] Internal server error")
        return (
            jsonify({"ok": False, "error": "internal_error", "message": "Unexpected error"}),
            500,
        )


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get("LOG_DIR"), app.config.get("LOG_LEVEL"))
    app.logger.info(
        "[BOOT] Logging configured. Writing to %s",
        Path(app.config.get("LOG_DIR", "logs")) / LOG_FILENAME,
    )

    if not (config_overrides and "SQLALCHEMY_DATABASE_URI" in config_overrides):
        database_url, database_source = get_database_uri_from_env()
        if database_url:
            app.config["SQLALCHEMY_DATABASE_URI"] = database_url
            app.logger.info(
                "[BOOT] SQLALCHEMY_DATABASE_URI resolved from %s: %s",
                database_source,
                _mask_database_uri(database_url),
            )
        else:
            app.logger.warning(
                "[BOOT] DATABASE_URL not set. Falling back to %s",
                Config.SQLALCHEMY_DATABASE_URI,
            )

    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    init_db(app)
    migrate.init_app(app, db)
    _enable_sqlite_savepoints(app)

    redis_url = app.config.get("REDIS_URL") or os.getenv("REDIS_URL")
    cache_config = {"CACHE_DEFAULT_TIMEOUT": app.config.get("MISSION_CACHE_TIMEOUT", 90)}
    if redis_url and not app.config.get("TESTING"):
        cache_config.update({"CACHE_TYPE": "RedisCache", "CACHE_REDIS_URL": redis_url})
    else:
        cache_config["CACHE_TYPE"] = "SimpleCache"
    cache.init_app(app, config=cache_config)
    app.logger.info("[BOOT] Mission mirror backed by %s", cache_config["CACHE_TYPE"])

    app.config.setdefault("COMPRESS_ALGORITHM", ["br", "gzip"])
    compress.init_app(app)

    app.register_blueprint(missions_bp)
    app.register_blueprint(participations_bp)
    app.register_blueprint(pricing_bp)

    _register_error_handlers(app)
    register_cli_commands(app)

    return app


__all__ = ["create_app", "migrate"]
