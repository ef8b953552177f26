"""
Configuration management for the points ledger service.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _split_origins(raw: str) -> list:
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Admin frontend origins allowed to call the API
    CORS_ORIGINS = _split_origins(os.getenv(
        'CORS_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000'
    ))

    # Shared secret for signed order-completed webhooks (unsigned if empty)
    ORDER_WEBHOOK_SECRET = os.getenv('ORDER_WEBHOOK_SECRET', '')

    # Optimistic retries when two writers race to create the same account row
    LEDGER_MAX_RETRIES = int(os.getenv('LEDGER_MAX_RETRIES', '3'))

    # Leaderboard paging
    LEADERBOARD_DEFAULT_LIMIT = 10
    LEADERBOARD_MAX_LIMIT = 100


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///pointsledger_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration. Requires DATABASE_URL and a strong SECRET_KEY."""
    DEBUG = False

    SECRET_KEY = os.getenv('SECRET_KEY', '')

    # Managed Postgres hands out postgres:// URLs; SQLAlchemy 2 only accepts postgresql://
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', '').replace('postgres://', 'postgresql://', 1)

    # Short ledger transactions; keep a small pool and drop stale connections
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'max_overflow': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    MIN_SECRET_KEY_LENGTH = 32

    @classmethod
    def validate(cls) -> None:
        """
        Refuse to start with an unusable production environment.

        Raises:
            RuntimeError: SECRET_KEY missing/short or DATABASE_URL missing
        """
        problems = []
        if not cls.SECRET_KEY:
            problems.append("SECRET_KEY is not set")
        elif len(cls.SECRET_KEY) < cls.MIN_SECRET_KEY_LENGTH:
            problems.append(f"SECRET_KEY must be at least {cls.MIN_SECRET_KEY_LENGTH} characters")
        if not cls.SQLALCHEMY_DATABASE_URI:
            problems.append("DATABASE_URL is not set")
        if problems:
            raise RuntimeError("Invalid production configuration: " + "; ".join(problems))


class TestingConfig(BaseConfig):
    """Testing configuration. Webhooks are accepted unsigned."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    ORDER_WEBHOOK_SECRET = ''


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}


def get_config(config_name: str = 'development'):
    """Config class for an environment name; unknown names get development."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """Run environment-specific checks before the app is built."""
    if config_name == 'production':
        ProductionConfig.validate()
