"""
Configuration for the class record grade engine.

Values come from the process environment, with a .env file loaded first.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def build_database_uri(environment: str | None = None) -> str:
    """Resolve the SQLAlchemy URI for the given ENVIRONMENT value.

    DATABASE_URL always wins. Otherwise "local" and "online"/"production"
    point at MySQL through PyMySQL and "sqlite" at a file next to the app.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    environment = (environment or os.getenv("ENVIRONMENT", "local")).lower()
    if environment == "local":
        db_host = os.getenv("LOCAL_DB_HOST", "localhost")
        db_port = os.getenv("LOCAL_DB_PORT", "3306")
        db_user = os.getenv("LOCAL_DB_USER", "root")
        db_password = os.getenv("LOCAL_DB_PASSWORD", "")
        db_name = os.getenv("LOCAL_DB_NAME", "class_record")
    elif environment in ("production", "online"):
        db_host = os.getenv("ONLINE_DB_HOST", "localhost")
        db_port = os.getenv("ONLINE_DB_PORT", "3306")
        db_user = os.getenv("ONLINE_DB_USER", "")
        db_password = os.getenv("ONLINE_DB_PASSWORD", "")
        db_name = os.getenv("ONLINE_DB_NAME", "class_record")
    elif environment == "sqlite":
        path = os.getenv(
            "SQLITE_PATH",
            os.path.join(os.path.dirname(os.path.abspath(__file__)), "class_record.db"),
        )
        return f"sqlite:///{path}"
    else:
        raise ValueError(
            f"Invalid ENVIRONMENT value: {environment}. Must be 'local', 'production'/'online' or 'sqlite'"
        )

    return f"mysql+pymysql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


def engine_options_for(uri: str, store_timeout: float) -> dict:
    """Engine options per backend; every store call is bounded by store_timeout."""
    if uri.startswith("sqlite"):
        # Busy timeout keeps concurrent writers waiting instead of failing fast
        return {"connect_args": {"timeout": store_timeout}}
    if uri.startswith("mysql"):
        return {
            "pool_size": 10,  # Number of connections to maintain
            "max_overflow": 20,  # Additional connections beyond pool_size
            "pool_recycle": 3600,  # Recycle connections after 1 hour
            "pool_pre_ping": True,  # Test connections before use
            "pool_timeout": store_timeout,
            "connect_args": {
                "connect_timeout": 10,
                "read_timeout": int(store_timeout),
                "write_timeout": int(store_timeout),
            },
        }
    return {"pool_pre_ping": True, "pool_timeout": store_timeout}


class Config:
    """Application configuration class."""

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = _env_flag("WTF_CSRF_ENABLED", True)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Grade engine policy
    GRADE_STORE_TIMEOUT = float(os.getenv("GRADE_STORE_TIMEOUT", "10"))
    AUTO_PUBLISH_LATE_GRADES = _env_flag("AUTO_PUBLISH_LATE_GRADES", False)
    ALLOW_EDIT_AFTER_PUBLISH = _env_flag("ALLOW_EDIT_AFTER_PUBLISH", True)
    RANK_TIE_POLICY = os.getenv("RANK_TIE_POLICY", "competition")
    LETTER_GRADE_POLICY = os.getenv("LETTER_GRADE_POLICY", "scale")
    PASSING_PERCENTAGE = float(os.getenv("PASSING_PERCENTAGE", "50"))

    def __init__(self):
        self.SQLALCHEMY_DATABASE_URI = build_database_uri()
        self.SQLALCHEMY_ENGINE_OPTIONS = engine_options_for(
            self.SQLALCHEMY_DATABASE_URI, self.GRADE_STORE_TIMEOUT
        )


class TestingConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "DEBUG"
    GRADE_STORE_TIMEOUT = 5.0

    def __init__(self, database_uri: str = "sqlite://"):
        self.SQLALCHEMY_DATABASE_URI = database_uri
        self.SQLALCHEMY_ENGINE_OPTIONS = engine_options_for(
            database_uri, self.GRADE_STORE_TIMEOUT
        )
