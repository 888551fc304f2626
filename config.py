import os
import secrets
from datetime import timedelta


def _database_url(value, fallback):
    """SQLAlchemy only accepts the postgresql:// scheme (Heroku still hands out postgres://)"""
    url = value or fallback
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


def _redis_storage_url(url):
    # Heroku Redis serves a self-signed chain over rediss://
    if url.startswith('rediss://'):
        return url + '?ssl_cert_reqs=none'
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        SECRET_KEY = secrets.token_hex(32)
        print("WARNING: SECRET_KEY is not set; sessions will not survive a restart.")

    # Database
    database_url = _database_url(os.environ.get('DATABASE_URL'), 'postgresql://localhost/helpdesk')
    SQLALCHEMY_DATABASE_URI = database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': int(os.environ.get('DB_POOL_SIZE', 10)),
        'max_overflow': int(os.environ.get('DB_MAX_OVERFLOW', 20)),
        'pool_pre_ping': True,
        'pool_recycle': 300,  # seconds
        'pool_timeout': 30,
    }

    # Agent and portal sessions share the signed cookie under different keys
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = bool(os.environ.get('DYNO')) or os.environ.get('FLASK_ENV') == 'production'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # AI assist and the AI agent API
    ANTHROPIC_API_KEY = os.environ.get('ANTHROPIC_API_KEY')
    AI_DEFAULT_MODEL = os.environ.get('AI_DEFAULT_MODEL', 'claude-haiku-4-5-20251001')

    # Sentry
    SENTRY_DSN = os.environ.get('SENTRY_DSN')
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE', 0.1))

    # Redis backs the rate limiter and is pinged by /health
    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://localhost:6379/0'
    HEALTH_CHECK_REDIS = True

    RATELIMIT_STORAGE_URI = _redis_storage_url(REDIS_URL)
    RATELIMIT_DEFAULT = '2000 per day;500 per hour'
    RATELIMIT_HEADERS_ENABLED = True

    # SLA business hours, evaluated in the tenant's timezone
    BUSINESS_HOURS_START = int(os.environ.get('BUSINESS_HOURS_START', 9))
    BUSINESS_HOURS_END = int(os.environ.get('BUSINESS_HOURS_END', 17))
    BUSINESS_DAYS = (0, 1, 2, 3, 4)  # Monday-Friday

    # Page sizes
    TICKETS_PER_PAGE = 25
    CONTACTS_PER_PAGE = 50
    AI_ACTIONS_PER_PAGE = 50
    SEARCH_RESULTS_PER_TYPE = 5


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True

    if 'postgresql://' in Config.database_url and 'sslmode' not in Config.database_url:
        SQLALCHEMY_DATABASE_URI = Config.database_url + '?sslmode=require'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    # TEST_DATABASE_URL lets CI point the suite at Postgres
    SQLALCHEMY_DATABASE_URI = _database_url(os.environ.get('TEST_DATABASE_URL'), 'sqlite://')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    HEALTH_CHECK_REDIS = False
    ANTHROPIC_API_KEY = None
    BCRYPT_LOG_ROUNDS = 4


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
