import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _split(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL') or f"sqlite:///{BASE_DIR / 'data' / 'chat.db'}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER') or str(BASE_DIR / 'uploads')
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 5 * 1024 * 1024))
    ALLOWED_AVATAR_EXTENSIONS = set(_split(os.getenv('ALLOWED_AVATAR_EXTENSIONS', 'png,jpg,jpeg,gif,webp')))
    ADMIN_USERS = _split(os.getenv('ADMIN_USERS', ''))
    DEFAULT_AVATAR = os.getenv('DEFAULT_AVATAR', '/avatars/default.png')
    BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', 12))
    HISTORY_LIMIT = int(os.getenv('HISTORY_LIMIT', 200))
    MAX_MESSAGE_LENGTH = int(os.getenv('MAX_MESSAGE_LENGTH', 2000))
    CORS_ALLOWED_ORIGINS = os.getenv('CORS_ALLOWED_ORIGINS', '*')

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=int(os.getenv('SESSION_DAYS', 7)))
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', '') == '1'  # Set to 1 in production with HTTPS

    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', 3000))
    DEBUG = os.getenv('DEBUG', '') == '1'
    ALLOW_UNSAFE_WERKZEUG = os.getenv('ALLOW_UNSAFE_WERKZEUG', '') == '1'
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    BCRYPT_ROUNDS = 4
    ADMIN_USERS = ['root']
    HISTORY_LIMIT = 50
