"""Error kinds, operation results and the service-operation boundary.

Public service operations never raise across the service boundary. Each one
is wrapped by :func:`service_operation`, which turns domain exceptions and
storage failures into a failed :class:`OperationResult`. Running out of
points is an expected outcome rather than an exception, so it is only ever
reported through :meth:`OperationResult.insufficient`.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, ParamSpec, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

T = TypeVar("T")
P = ParamSpec("P")

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INSUFFICIENT_POINTS = "insufficient_points"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


class MatchpointError(Exception):
    """Base class for errors raised inside service operations."""

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(MatchpointError):
    kind = ErrorKind.VALIDATION


class NotFoundError(MatchpointError):
    kind = ErrorKind.NOT_FOUND


class StorageError(MatchpointError):
    kind = ErrorKind.STORAGE


class ConcurrencyConflict(MatchpointError):
    kind = ErrorKind.CONCURRENCY_CONFLICT


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a public service operation."""

    success: bool
    data: T | None = None
    error: ErrorKind | None = None
    message: str | None = None
    required: int | None = None
    balance: int | None = None

    @property
    def deficit(self) -> int:
        if self.required is None or self.balance is None:
            return 0
        return max(self.required - self.balance, 0)

    @classmethod
    def ok(cls, data: T | None = None) -> OperationResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> OperationResult[T]:
        return cls(success=False, error=kind, message=message)

    @classmethod
    def insufficient(cls, required: int, balance: int) -> OperationResult[T]:
        return cls(
            success=False,
            error=ErrorKind.INSUFFICIENT_POINTS,
            message=f"Insufficient points: {required} required, {balance} available",
            required=required,
            balance=balance,
        )


def require_ids(**ids: Any) -> None:
    """Raise ValidationError for any empty identifier."""
    missing = [name for name, value in ids.items() if value is None or value == ""]
    if missing:
        raise ValidationError(f"Missing identifier(s): {', '.join(missing)}")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


async def _rollback(db: AsyncSession, operation: str) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.warning("rollback_failed", operation=operation, exc_info=True)


def service_operation(
    name: str,
) -> Callable[[Callable[P, Awaitable[OperationResult[T]]]], Callable[P, Awaitable[OperationResult[T]]]]:
    """Wrap a service coroutine whose first argument is the AsyncSession.

    Any exception rolls the session back and becomes a failed result.
    The rollback expires every ORM instance loaded in that session, so a
    caller that reuses the session must not read attributes of objects it
    loaded before a failed call (in async code the lazy refresh raises
    ``MissingGreenlet``). Copy ids out first or reload.
    """

    def decorator(
        func: Callable[P, Awaitable[OperationResult[T]]],
    ) -> Callable[P, Awaitable[OperationResult[T]]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> OperationResult[T]:
            db = args[0] if args else kwargs["db"]
            try:
                return await func(*args, **kwargs)
            except MatchpointError as exc:
                await _rollback(db, name)  # type: ignore[arg-type]
                if exc.kind is ErrorKind.STORAGE:
                    logger.warning("operation_failed", operation=name, error=exc.message)
                return OperationResult.fail(exc.kind, exc.message)
            except DBAPIError as exc:
                await _rollback(db, name)  # type: ignore[arg-type]
                if _sqlstate(exc) in CONFLICT_SQLSTATES:
                    logger.warning("operation_conflict", operation=name, sqlstate=_sqlstate(exc))
                    return OperationResult.fail(ErrorKind.CONCURRENCY_CONFLICT, "Concurrent update, retry the operation")
                logger.error("storage_error", operation=name, error=str(exc), exc_info=exc)
                return OperationResult.fail(ErrorKind.STORAGE, "Storage backend failure")
            except SQLAlchemyError as exc:
                await _rollback(db, name)  # type: ignore[arg-type]
                logger.error("storage_error", operation=name, error=str(exc), exc_info=exc)
                return OperationResult.fail(ErrorKind.STORAGE, "Storage backend failure")
            except Exception as exc:
                await _rollback(db, name)  # type: ignore[arg-type]
                logger.error("unexpected_error", operation=name, error=str(exc), exc_info=exc)
                return OperationResult.fail(ErrorKind.STORAGE, "Unexpected internal error")

        return wrapper

    return decorator
