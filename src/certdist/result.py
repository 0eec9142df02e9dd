"""
Result type: the railway every certdist stage runs on.

A Result[T] is either Success(value) or Failure(FailureDescription). Stages
are chained with .flat_map(); the first Failure short-circuits the rest, so
each stage only describes its happy path:

    scan → resolve → freshness → authorize → package → Result[bytes]

Adapters turn exceptions into failures at their boundary via
Result.from_computation(), which keeps try/except out of the pipelines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


@unique
class ErrorCode(Enum):
    """Failure categories. The server maps a subset of them onto HTTP statuses."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed request body (→ 400)."""

    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    """Public key not on the allow-list (→ 403)."""

    NOT_FOUND = "NOT_FOUND"
    """No certificate directory matches the domain (→ 404)."""

    NOT_MODIFIED = "NOT_MODIFIED"
    """The requester already holds the latest certificate (→ 304)."""

    PARSE_ERROR = "PARSE_ERROR"
    """A file is not a usable PEM certificate or private key."""

    ARCHIVE_ERROR = "ARCHIVE_ERROR"
    """Building or extracting the ZIP bundle failed."""

    RECIPIENT_ERROR = "RECIPIENT_ERROR"
    """The age recipient (public key) could not be parsed."""

    ENCRYPTION_ERROR = "ENCRYPTION_ERROR"
    """age encryption failed."""

    DECRYPTION_ERROR = "DECRYPTION_ERROR"
    """age identity parsing or decryption failed."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """The certificate server was unreachable or answered unexpectedly."""

    COMMAND_ERROR = "COMMAND_ERROR"
    """A post-install command exited non-zero or could not be started."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """What went wrong: a code, a human message and the originating exception."""

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def detail(self) -> str:
        """Message plus the underlying exception text, for log lines."""
        if self.exception is None:
            return self.message
        return f"{self.message}: {self.exception}"


class Result(Generic[T]):
    """
    Either Success(value) or Failure(error).

        >>> Result.success(2).map(lambda x: x * 21).value()
        42
        >>> Result.failure(ErrorCode.NOT_FOUND, "nope").map(lambda x: x * 21).is_failure()
        True
    """

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Return the success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Return the failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v!r}")
        raise TypeError("unreachable")  # pragma: no cover

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Collapse the Result by applying exactly one of the two functions."""
        match self:
            case Success(v):
                return on_success(v)
            case Failure(err):
                return on_failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Chain a Result-returning stage. Failures pass through untouched."""
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        code: ErrorCode,
        message: str,
    ) -> Result[T]:
        """Turn a Success into a Failure(code, message) when predicate is false."""
        return self.flat_map(
            lambda v: Result.success(v) if predicate(v) else Result.failure(code, message)
        )

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run a side effect (usually logging) on the success value."""
        match self:
            case Success(v):
                action(v)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        match self:
            case Failure(err):
                action(err)
        return self

    def recover_code(self, code: ErrorCode, fallback: Callable[[FailureDescription], T]) -> Result[T]:
        """
        Replace a Failure of one specific code with a Success.

        Used where a failure-track exit is a normal outcome for the caller,
        e.g. NOT_MODIFIED on the client.
        """
        match self:
            case Failure(err) if err.code is code:
                return Success(fallback(err))
        return self

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        return Failure(error)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """Run a computation that may raise; an exception becomes Failure(error_code)."""
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, error_message, e)

    def __bool__(self) -> bool:
        return self.is_success()

    def __repr__(self) -> str:
        match self:
            case Success(v):
                return f"Success({v!r})"
            case Failure(err):
                return f"Failure({err.code.value}: {err.message!r})"
        raise TypeError("unreachable")  # pragma: no cover


@dataclass(frozen=True, slots=True, repr=False)
class Success(Result[T]):
    """The success track. None is not a valid value."""

    _value: T

    def __post_init__(self) -> None:
        if self._value is None:
            raise TypeError("Success value must not be None")


@dataclass(frozen=True, slots=True, repr=False)
class Failure(Result[T]):
    """The failure track."""

    _error: FailureDescription
