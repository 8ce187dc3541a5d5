"""Base repository with shared lookup, transaction and error-mapping logic.

Subclasses specify model_class, id_column and not_found_error; the base
provides get_by_id / get_by_id_optional plus two context managers that every
storage call goes through:

    with self.guard("list roles", deadline):
        ...read...

    with self.atomic("assign permissions", deadline):
        ...writes, committed on exit or rolled back on any error...

Both check the caller's deadline, bound the statement on PostgreSQL, and
translate SQLAlchemy exceptions into the TideGate hierarchy. Nothing here
retries.
"""

import logging
from contextlib import contextmanager
from typing import TypeVar, Generic, Iterator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session, Query

from ..core.deadline import Deadline, check_deadline
from ..database import Base
from ..exceptions import (
    ConflictError,
    DatabaseError,
    OperationCancelledError,
    TideGateException,
    TransientStorageError,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

# SQLSTATE raised by PostgreSQL when statement_timeout fires or the query is cancelled.
_PG_QUERY_CANCELED = "57014"


def _sqlstate(error: SQLAlchemyError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    if orig is None:
        return None
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate.
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_storage_error(operation: str, error: SQLAlchemyError) -> TideGateException:
    """Map a SQLAlchemy failure to the matching TideGate exception."""
    if _sqlstate(error) == _PG_QUERY_CANCELED:
        return OperationCancelledError(operation, reason="statement timeout")
    if isinstance(error, IntegrityError):
        return ConflictError(
            f"{operation} conflicts with an existing row",
            details={"operation": operation},
        )
    if isinstance(error, (OperationalError, PoolTimeoutError, DisconnectionError)):
        return TransientStorageError(f"{operation} failed: storage unavailable", error)
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return TransientStorageError(f"{operation} failed: connection lost", error)
    return DatabaseError(f"{operation} failed", error)


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., Role)
        id_column:       Name of the primary-key column (default "id")
        not_found_error: Exception class to raise from get_by_id
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    not_found_error: Type[TideGateException]

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self) -> Query:
        return self.db.query(self.model_class)

    def get_by_id(self, entity_id: str, deadline: Optional[Deadline] = None) -> ModelT:
        """Get entity by primary key. Raises not_found_error if missing."""
        entity = self.get_by_id_optional(entity_id, deadline)
        if entity is None:
            raise self.not_found_error(entity_id)
        return entity

    def get_by_id_optional(self, entity_id: str, deadline: Optional[Deadline] = None) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found."""
        col = getattr(self.model_class, self.id_column)
        with self.guard(f"get {self.model_class.__tablename__}", deadline):
            return self._base_query().filter(col == entity_id).first()

    @contextmanager
    def guard(
        self,
        operation: str,
        deadline: Optional[Deadline] = None,
        check_after: bool = True,
    ) -> Iterator[None]:
        """Run one storage round trip under the caller's deadline.

        SQLAlchemy errors roll the session back and are re-raised as TideGate
        exceptions chained to the original.
        """
        check_deadline(deadline, operation)
        try:
            self._apply_statement_timeout(deadline)
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            translated = translate_storage_error(operation, e)
            logger.warning(
                "Storage operation failed: %s", getattr(e, "orig", None) or type(e).__name__,
                extra={"operation": operation, "error_type": type(e).__name__,
                       "error_code": translated.error_code.value},
            )
            raise translated from e
        if check_after:
            check_deadline(deadline, operation)

    @contextmanager
    def atomic(self, operation: str, deadline: Optional[Deadline] = None) -> Iterator[None]:
        """All-or-nothing unit of work.

        Commits when the block exits cleanly and the deadline still holds;
        any exception (storage, domain or cancellation) rolls back every
        write made inside the block.
        """
        with self.guard(operation, deadline, check_after=False):
            try:
                yield
                check_deadline(deadline, operation)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _apply_statement_timeout(self, deadline: Optional[Deadline]) -> None:
        """Bound the current transaction by the remaining deadline (PostgreSQL only)."""
        if deadline is None:
            return
        remaining = deadline.remaining()
        if remaining is None or self.db.get_bind().dialect.name != "postgresql":
            return
        # set_config(..., true) scopes the value to the current transaction.
        self.db.execute(
            text("SELECT set_config('statement_timeout', :ms, true)"),
            {"ms": str(max(1, int(remaining * 1000)))},
        )


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so *value* matches literally. Use with escape="\\\\"."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
