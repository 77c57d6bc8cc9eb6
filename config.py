import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _getenv_bool(name, default=False):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _getenv_csv(name):
    raw = os.getenv(name)
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv("JWT_ACCESS_TOKEN_HOURS", "12")))

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///marketplace_chat.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Les erreurs JWT doivent remonter jusqu'aux handlers de flask-jwt-extended
    PROPAGATE_EXCEPTIONS = True

    # Origines autorisées pour CORS et Socket.IO
    ALLOWED_CORS_ORIGINS = [
        "http://localhost:5173",
        "http://localhost:5000",
    ] + _getenv_csv("ALLOWED_CORS_ORIGINS")

    SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "eventlet")
    SOCKETIO_LOGGER = _getenv_bool("SOCKETIO_LOGGER", default=False)

    # Dossier des journaux de chats de support archivés
    ARCHIVE_DIR = os.getenv("ARCHIVE_DIR", "modchatlogs")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()

    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
    ADMIN_FIRST_NAME = os.getenv("ADMIN_FIRST_NAME", "Admin")
    ADMIN_LAST_NAME = os.getenv("ADMIN_LAST_NAME", "Plateforme")


class TestingConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SOCKETIO_ASYNC_MODE = "threading"
    SOCKETIO_LOGGER = False
    LOG_LEVEL = "WARNING"
    ADMIN_EMAIL = None
    ADMIN_PASSWORD = None
