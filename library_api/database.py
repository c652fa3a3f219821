import logging
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and session factory for the record store.

    ``connect`` blocks until the store answers, sleeping ``retry_delay``
    seconds between failed attempts. ``max_attempts`` of 0 retries forever.
    """

    def __init__(self, url, *, retry_delay=5.0, max_attempts=0, timeout=None, sleep=time.sleep):
        self.url = url
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self._sleep = sleep

        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if timeout is not None:
                connect_args["timeout"] = timeout
        self.engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.connected = False

    def connect(self):
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except OperationalError as exc:
                logger.warning("Database connection attempt %d failed: %s", attempt, exc)
                if self.max_attempts and attempt >= self.max_attempts:
                    raise
                logger.info("Reconnecting in %ss", self.retry_delay)
                self._sleep(self.retry_delay)
                continue
            self.connected = True
            logger.info("Connected to database after %d attempt(s)", attempt)
            return

    def create_all(self):
        Base.metadata.create_all(self.engine)

    def is_ready(self):
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Readiness check failed: %s", exc)
            return False
        return True

    def session(self):
        return self.SessionLocal()

    def dispose(self):
        self.engine.dispose()
        self.connected = False


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@contextmanager
def transaction(db):
    """Commit the block as one unit, rolling back on any exception."""
    if db.in_transaction():
        # close the implicit transaction left by earlier reads
        db.commit()
    with db.begin():
        yield db
