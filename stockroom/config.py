"""
Environment-driven settings.

Every setting is read once at import through EnvReader. Malformed values never
stop the app from booting: the reader falls back to the default and records a
warning that create_app logs.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

ENVIRONMENTS = ('development', 'testing', 'staging', 'production')
_TRUTHY = frozenset({'1', 'true', 'yes', 'on'})
_FALSY = frozenset({'0', 'false', 'no', 'off'})


@dataclass
class EnvReader:
    source: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    warnings: list[str] = field(default_factory=list)

    def _lookup(self, key: str) -> str | None:
        raw = self.source.get(key)
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def text(self, key: str, default: str | None = None) -> str | None:
        value = self._lookup(key)
        return default if value is None else value

    def integer(self, key: str, default: int) -> int:
        value = self._lookup(key)
        if value is None:
            return default
        if value.lstrip('-').isdigit():
            return int(value)
        self.warnings.append(f"{key}={value!r} is not an integer; using {default}")
        return default

    def flag(self, key: str, default: bool) -> bool:
        value = self._lookup(key)
        if value is None:
            return default
        if value.lower() in _TRUTHY:
            return True
        if value.lower() in _FALSY:
            return False
        self.warnings.append(f"{key}={value!r} is not a boolean; using {default}")
        return default

    def database_url(self, key: str = 'DATABASE_URL') -> str | None:
        return normalize_database_url(self.text(key))


def normalize_database_url(url: str | None) -> str | None:
    """Rewrite postgres:// to the postgresql:// scheme SQLAlchemy requires."""
    if not url:
        return None
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def resolve_environment(reader: EnvReader) -> str:
    name = (reader.text('FLASK_ENV') or 'development').lower()
    if name not in ENVIRONMENTS:
        raise RuntimeError(f"FLASK_ENV must be one of {', '.join(ENVIRONMENTS)}; got {name!r}")
    return name


env = EnvReader()
ACTIVE_ENV = resolve_environment(env)


class BaseConfig:
    FLASK_ENV = ACTIVE_ENV
    SECRET_KEY = env.text('FLASK_SECRET_KEY', 'dev-only-secret')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = env.database_url()

    REDIS_URL = env.text('REDIS_URL')
    CACHE_DEFAULT_TIMEOUT = env.integer('CACHE_DEFAULT_TIMEOUT', 300)

    PERMISSION_CACHE_TTL = env.integer('PERMISSION_CACHE_TTL', 300)
    # Users with no role assignment act as admins until roles are rolled out everywhere
    GRANT_ADMIN_WHEN_NO_ROLES = env.flag('GRANT_ADMIN_WHEN_NO_ROLES', True)

    INVOICE_DUE_DAYS = env.integer('INVOICE_DUE_DAYS', 30)
    DEFAULT_CURRENCY = env.text('DEFAULT_CURRENCY', 'USD')

    LOG_LEVEL = env.text('LOG_LEVEL', 'INFO')
    LOG_REDACT_PII = env.flag('LOG_REDACT_PII', True)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = env.text('LOG_LEVEL', 'DEBUG')
    SQLALCHEMY_DATABASE_URI = BaseConfig.SQLALCHEMY_DATABASE_URI or 'sqlite:///stockroom-dev.db'


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    LOG_LEVEL = 'WARNING'


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': env.integer('SQLALCHEMY_POOL_RECYCLE', 1800),
        'pool_size': env.integer('SQLALCHEMY_POOL_SIZE', 10),
        'max_overflow': env.integer('SQLALCHEMY_MAX_OVERFLOW', 20),
    }


class StagingConfig(ProductionConfig):
    LOG_LEVEL = env.text('LOG_LEVEL', 'DEBUG')


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'staging': StagingConfig,
    'production': ProductionConfig,
}

Config = CONFIGS[ACTIVE_ENV]
CONFIG_WARNINGS = tuple(env.warnings)
