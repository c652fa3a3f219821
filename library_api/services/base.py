import logging
import time
from datetime import datetime, UTC
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from ..database import transaction
from ..errors import ConcurrencyConflict, InternalFailure, LibraryError, OperationTimeout, ValidationFailedError

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(UTC)


class TransactionalService:
    """Runs each operation as one transaction with optimistic-lock retries.

    Rows carry a version column, so a lost race shows up as a
    ``StaleDataError`` at flush time. The whole unit of work is then replayed
    from fresh reads, at most ``conflict_retries`` more times. Every call is
    bounded by ``timeout`` seconds, checked before each attempt and again
    before commit.
    """

    def __init__(self, *, timeout=10.0, conflict_retries=3, clock=None, monotonic=time.monotonic):
        self.timeout = timeout
        self.conflict_retries = conflict_retries
        self.clock = clock or utcnow
        self._monotonic = monotonic

    def _check_deadline(self, deadline, action):
        if self._monotonic() > deadline:
            raise OperationTimeout(f"{action} timed out after {self.timeout:g}s")

    def _run(self, db, action, work):
        deadline = self._monotonic() + self.timeout
        attempt = 0
        while True:
            attempt += 1
            self._check_deadline(deadline, action)
            try:
                with transaction(db):
                    result = work(db)
                    db.flush()
                    self._check_deadline(deadline, action)
                return result
            except LibraryError:
                raise
            except StaleDataError as exc:
                if attempt > self.conflict_retries:
                    logger.warning("%s gave up after %d conflicting attempts", action, attempt)
                    raise ConcurrencyConflict("Record was modified concurrently, please retry") from exc
                logger.info("%s hit a version conflict (attempt %d), retrying", action, attempt)
            except IntegrityError as exc:
                logger.info("%s rejected by database constraint: %s", action, exc.orig)
                raise ValidationFailedError("Record violates a database constraint") from exc
            except SQLAlchemyError as exc:
                logger.exception("%s failed: %s", action, exc)
                raise InternalFailure(f"{action} failed, please try again later") from exc
