import logging
import time
from contextlib import contextmanager
from typing import Optional

from flask import Flask
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from utils.errors import ConstraintViolation, StoreTimeout

# Configure logging for database operations
logger = logging.getLogger(__name__)

# Driver messages that mean "waited too long for a lock or the server"
_TIMEOUT_MARKERS = (
    "database is locked",
    "lock wait timeout",
    "timed out",
    "timeout",
    "deadlock",
)


class DatabaseConnection:
    """Binds the grade store to the Flask app and prepares its schema."""

    def __init__(self, app: Optional[Flask] = None, max_retries: int = 3, retry_delay: float = 1.0):
        self.app = app
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        self.app = app
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        # Never log credentials
        location = db_uri.rsplit("@", 1)[-1]
        logger.info(f"Grade store at {location}")

        if "sqlalchemy" in app.extensions:
            logger.info("SQLAlchemy already registered on this app")
            return
        db.init_app(app)

    def _ping(self):
        with self.app.app_context():
            with db.engine.connect() as connection:
                connection.execute(db.text("SELECT 1"))

    def wait_for_database(self) -> bool:
        """Ping the store, backing off exponentially between failed attempts."""
        if self.app is None:
            logger.error("DatabaseConnection used before init_app")
            return False

        delay = self.retry_delay
        for attempt in range(1, self.max_retries + 1):
            try:
                self._ping()
                return True
            except OperationalError as e:
                logger.warning(f"Store unreachable (attempt {attempt}/{self.max_retries}): {str(e)}")
                if attempt == self.max_retries:
                    break
                time.sleep(delay)
                delay *= 2
        logger.error(f"Store unreachable after {self.max_retries} attempts")
        return False

    def create_tables(self) -> bool:
        """Create missing tables; existing ones are left untouched."""
        try:
            with self.app.app_context():
                db.create_all()
        except OperationalError as e:
            logger.error(f"Creating grade tables failed: {str(e)}")
            return False
        logger.info("Grade tables ready")
        return True

    def init_database(self) -> bool:
        return self.wait_for_database() and self.create_tables()


def dialect_name() -> str:
    """Name of the dialect bound to the current session (sqlite, mysql, postgresql)."""
    return db.session.get_bind().dialect.name


def _is_timeout(exc: OperationalError) -> bool:
    text = str(getattr(exc, "orig", exc)).lower()
    return any(marker in text for marker in _TIMEOUT_MARKERS)


@contextmanager
def store_call(operation: str):
    """Translate driver failures raised inside the block into engine errors.

    Lock waits and driver timeouts become StoreTimeout, unique-key races
    become ConstraintViolation. The session is rolled back first so the
    caller can retry on a clean transaction.
    """
    try:
        yield
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"{operation}: integrity conflict: {e.orig}")
        raise ConstraintViolation(f"{operation} conflicted with a concurrent write") from e
    except OperationalError as e:
        db.session.rollback()
        if _is_timeout(e):
            logger.warning(f"{operation}: store timeout: {e.orig}")
            raise StoreTimeout(f"{operation} timed out waiting for the store") from e
        logger.error(f"{operation}: store failure: {e.orig}")
        raise
