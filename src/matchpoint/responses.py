"""Turning service results into HTTP responses."""

from typing import TypeVar

from matchpoint.errors import ErrorKind, OperationResult

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.INSUFFICIENT_POINTS: 402,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STORAGE: 503,
    ErrorKind.CONCURRENCY_CONFLICT: 409,
}


class OperationFailed(Exception):
    """Raised by routes for a failed OperationResult; rendered by the global handler."""

    def __init__(self, result: OperationResult) -> None:
        super().__init__(result.message)
        self.result = result

    @property
    def kind(self) -> ErrorKind:
        return self.result.error or ErrorKind.STORAGE

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def body(self) -> dict[str, object]:
        body: dict[str, object] = {"detail": self.result.message, "error": self.kind.value}
        if self.kind is ErrorKind.INSUFFICIENT_POINTS:
            body.update(required=self.result.required, balance=self.result.balance, deficit=self.result.deficit)
        return body


def unwrap(result: OperationResult[T]) -> T:
    """Return the result's data or raise OperationFailed."""
    if not result.success:
        raise OperationFailed(result)
    return result.data  # type: ignore[return-value]
