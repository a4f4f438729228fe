"""stockroom application factory."""
import logging
import os
from typing import Any

from flask import Flask
from sqlalchemy.pool import StaticPool

from .config import CONFIG_WARNINGS
from .extensions import cache, db, login_manager, migrate
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE = 'sqlite:///:memory:'


def create_app(config: dict[str, Any] | None = None) -> Flask:
    """Build the app. ``config`` overrides settings; ``DATABASE_URL`` there wins over the environment."""
    app = Flask(__name__)
    app.config.from_object('stockroom.config.Config')
    app.config.update(config or {})
    if config and config.get('DATABASE_URL'):
        app.config['SQLALCHEMY_DATABASE_URI'] = config['DATABASE_URL']
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        raise RuntimeError("DATABASE_URL is required outside development and testing")

    configure_logging(app)
    for warning in CONFIG_WARNINGS:
        logger.warning("Config: %s", warning)

    _tune_engine_for_sqlite(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    cache.init_app(app, config=_cache_settings(app))

    from . import models  # noqa: F401  # register tables with the metadata

    @app.teardown_appcontext
    def _discard_failed_work(exc):
        if exc is not None:
            db.session.rollback()

    from .management import register_commands

    register_commands(app)

    if os.environ.get('SQLALCHEMY_CREATE_ALL', '').strip().lower() in {'1', 'true', 'yes', 'on'}:
        with app.app_context():
            db.create_all()
        logger.info("Tables created with db.create_all() (SQLALCHEMY_CREATE_ALL)")

    return app


def _tune_engine_for_sqlite(app: Flask) -> None:
    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if not uri.startswith('sqlite'):
        return
    options = {
        key: value
        for key, value in app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {}).items()
        if key not in ('pool_size', 'max_overflow', 'pool_timeout')
    }
    if uri == IN_MEMORY_SQLITE:
        # One shared connection, or every session would see its own empty database
        options.update(poolclass=StaticPool, connect_args={'check_same_thread': False})
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = options


def _cache_settings(app: Flask) -> dict:
    settings = {'CACHE_DEFAULT_TIMEOUT': app.config.get('CACHE_DEFAULT_TIMEOUT', 300)}
    redis_url = app.config.get('REDIS_URL')
    if redis_url and not app.testing:
        settings.update(CACHE_TYPE='RedisCache', CACHE_REDIS_URL=redis_url)
        logger.info("Permission cache backed by Redis")
    else:
        settings['CACHE_TYPE'] = 'SimpleCache'
    return settings
