"""Flask Application Configuration."""
import os
from datetime import timedelta
from pathlib import Path

basedir = Path(__file__).parent.parent.absolute()


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database URL - supports SQLite, PostgreSQL, MariaDB/MySQL
    # Fix postgres:// → postgresql:// (some tools use deprecated format)
    _database_url = os.environ.get('DATABASE_URL', '')
    if _database_url.startswith('postgres://'):
        _database_url = _database_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _database_url or f'sqlite:///{basedir}/instance/helpdesk.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JSON API: forms are validated without CSRF tokens
    WTF_CSRF_ENABLED = False

    # Auth session validity (reported to clients as expires_at)
    SESSION_LIFETIME = timedelta(hours=int(os.environ.get('SESSION_LIFETIME_HOURS', '8')))
    PERMANENT_SESSION_LIFETIME = SESSION_LIFETIME

    # Telegram bot
    TELEGRAM_BOT_TOKEN = os.environ.get('TELEGRAM_BOT_TOKEN')
    TELEGRAM_API_BASE = os.environ.get('TELEGRAM_API_BASE', 'https://api.telegram.org')
    TELEGRAM_TIMEOUT = 10

    # Deep links in notifications point here
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')

    # Notification functions are called from the browser
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Background notification fan-out
    DETACHED_TASKS_INLINE = False
    DETACHED_TASK_WORKERS = 4

    # Ticket attachments
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'local')
    STORAGE_DIR = basedir / 'data' / 'attachments'
    S3_ENDPOINT = os.environ.get('S3_ENDPOINT', '')
    S3_ACCESS_KEY = os.environ.get('S3_ACCESS_KEY', '')
    S3_SECRET_KEY = os.environ.get('S3_SECRET_KEY', '')
    S3_BUCKET = os.environ.get('S3_BUCKET', 'ticket-attachments')
    S3_PUBLIC_URL = os.environ.get('S3_PUBLIC_URL', '')
    MAX_ATTACHMENT_SIZE = 5 * 1024 * 1024
    MAX_CONTENT_LENGTH = 2 * MAX_ATTACHMENT_SIZE
    ALLOWED_ATTACHMENT_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'pdf'}


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DETACHED_TASKS_INLINE = True
    TELEGRAM_BOT_TOKEN = 'test-token'
    FRONTEND_URL = 'http://frontend.test'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
