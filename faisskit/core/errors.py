"""
Result Monad & Error Taxonomy: Typed Failures From the Numerical Engine

Every fallible faisskit operation returns a Result[T, FaissError] instead of
raising. The error side is a closed taxonomy:

    NativeFailure       the engine reported a failure (code + diagnostic text)
    InvalidDescription  a factory description was rejected
    InvalidEncoding     a text argument is not valid UTF-8
    DimensionMismatch   vector (or id) buffer does not line up with d
    NullPointer         the engine returned no handle where one is required

Caller contract breaches that cannot be recovered from (reusing a consumed
index handle, tearing down GPU resources still in use) raise
ContractViolation instead of producing a Result.

Engine Boundary:
    native_call() is the only place engine exceptions are caught. The
    diagnostic text is captured from the exception at the failure point,
    before any other engine call can run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    NoReturn,
    Optional,
    TypeVar,
    Union,
    final,
)

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE VARIABLES
# =============================================================================
T = TypeVar("T")  # Success value type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: SUCCESS VARIANT
# =============================================================================
@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result.

    Example:
        result = index.search(queries, k=5)
        if result.is_ok():
            labels = result.unwrap().labels
    """
    _value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract the value. Safe to call after an is_ok() check."""
        return self._value

    def unwrap_or(self, default: T) -> T:
        return self._value

    def unwrap_or_else(self, f: Callable[[], T]) -> T:
        return self._value

    def expect(self, msg: str) -> T:
        return self._value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        """
        Apply transformation to success value.

        Example:
            Ok(5).map(lambda x: x * 2)  # Ok(10)
        """
        return Ok(fn(self._value))

    def map_err(self, fn: Callable[[Any], Any]) -> "Ok[T]":
        return self

    def flat_map(self, fn: Callable[[T], "Result[U, Any]"]) -> "Result[U, Any]":
        """
        Monadic bind for chaining fallible operations.

        Example:
            index_factory(8, "Flat").and_then(lambda idx: idx.serialize())
        """
        return fn(self._value)

    def and_then(self, fn: Callable[[T], "Result[U, Any]"]) -> "Result[U, Any]":
        """Alias for flat_map."""
        return fn(self._value)

    def or_else(self, fn: Callable[[Any], "Result[T, Any]"]) -> "Ok[T]":
        return self

    @property
    def value(self) -> T:
        return self._value

    @property
    def error(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"Ok({self._value!r})"

    def __bool__(self) -> Literal[True]:
        return True


# =============================================================================
# RESULT MONAD: ERROR VARIANT
# =============================================================================
@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Error variant of Result.

    Example:
        result = index_factory(8, "NotAnIndex")
        if result.is_err():
            print(result.error.code.name)  # INVALID_DESCRIPTION
    """
    _error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> NoReturn:
        """
        Unwrapping an error is a programming error.

        Raises:
            RuntimeError: Always, with the error text
        """
        raise RuntimeError(f"Called unwrap() on Err: {self._error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[], T]) -> T:
        return f()

    def expect(self, msg: str) -> NoReturn:
        raise RuntimeError(f"{msg}: {self._error}")

    def map(self, fn: Callable[[Any], U]) -> "Err[E]":
        return self

    def map_err(self, fn: Callable[[E], U]) -> "Err[U]":
        """Transform the error value."""
        return Err(fn(self._error))

    def flat_map(self, fn: Callable[[Any], "Result[U, E]"]) -> "Err[E]":
        return self

    def and_then(self, fn: Callable[[Any], "Result[U, E]"]) -> "Err[E]":
        return self

    def or_else(self, fn: Callable[[E], "Result[T, Any]"]) -> "Result[T, Any]":
        """Try recovery on error."""
        return fn(self._error)

    @property
    def value(self) -> None:
        return None

    @property
    def error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Err({self._error!r})"

    def __bool__(self) -> Literal[False]:
        return False


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# ERROR TAXONOMY
# =============================================================================
class ErrorCode(Enum):
    """
    Canonical error codes.

    Ranges:
        1000-1999: Engine errors
        2000-2999: Description/text errors
        3000-3999: Data layout errors
    """
    NATIVE_FAILURE = 1001
    NULL_POINTER = 1002

    INVALID_DESCRIPTION = 2001
    INVALID_ENCODING = 2002

    DIMENSION_MISMATCH = 3001


class NativeStatus(IntEnum):
    """Status codes reported across the engine boundary."""
    OK = 0
    ENGINE_EXCEPTION = -1   # faiss raised its own exception type
    RUNTIME_ERROR = -2      # standard runtime failure (allocation, I/O, ...)
    UNKNOWN = -4            # anything else escaping the engine


@dataclass(frozen=True, slots=True)
class FaissError:
    """
    Base error type for all faisskit operations.

    Fields:
        code: Taxonomy code
        message: Human-readable message
        details: Machine-readable context (kind specific)
        cause: Optional chained error
        timestamp: When the failure was observed
    """
    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    cause: Optional["FaissError"] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/transmission."""
        return {
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
            "cause": self.cause.to_dict() if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def with_cause(self, cause: "FaissError") -> "FaissError":
        """Chain errors for root cause analysis."""
        return type(self)(
            code=self.code,
            message=self.message,
            details=self.details,
            cause=cause,
            timestamp=self.timestamp,
        )


class NativeFailure(FaissError):
    """The numerical engine failed; carries its status code and diagnostic."""

    @property
    def native_code(self) -> int:
        return self.details["native_code"]

    @property
    def engine_message(self) -> str:
        return self.details["engine_message"]

    @classmethod
    def new(cls, native_code: int, engine_message: str, operation: str = "") -> "NativeFailure":
        prefix = f"{operation}: " if operation else ""
        return cls(
            code=ErrorCode.NATIVE_FAILURE,
            message=f"{prefix}engine error {native_code}: {engine_message}",
            details={
                "native_code": int(native_code),
                "engine_message": engine_message,
                "operation": operation,
            },
        )

    @classmethod
    def from_exception(cls, exc: BaseException, operation: str = "") -> "NativeFailure":
        """Translate an exception raised by the engine, reading its text now."""
        text = str(exc).strip() or type(exc).__name__
        if isinstance(exc, RuntimeError) and text.startswith("Error in"):
            status = NativeStatus.ENGINE_EXCEPTION
        elif isinstance(exc, (RuntimeError, MemoryError, OSError)):
            status = NativeStatus.RUNTIME_ERROR
        else:
            status = NativeStatus.UNKNOWN
        return cls.new(status, text, operation)

    @classmethod
    def not_trained(cls, operation: str) -> "NativeFailure":
        return cls.new(
            NativeStatus.ENGINE_EXCEPTION,
            "index is not trained; call train() before adding vectors",
            operation,
        )

    @classmethod
    def unsupported(cls, operation: str, reason: str) -> "NativeFailure":
        return cls.new(NativeStatus.ENGINE_EXCEPTION, reason, operation)


class InvalidDescription(FaissError):
    """A factory description could not be turned into an index."""

    @property
    def text(self) -> str:
        return self.details["text"]

    @classmethod
    def new(cls, text: str, reason: str) -> "InvalidDescription":
        return cls(
            code=ErrorCode.INVALID_DESCRIPTION,
            message=f"Invalid index description {text!r}: {reason}",
            details={"text": text, "reason": reason},
        )

    @classmethod
    def rejected(cls, text: str, engine_message: str) -> "InvalidDescription":
        return cls(
            code=ErrorCode.INVALID_DESCRIPTION,
            message=f"Invalid index description {text!r}: {engine_message}",
            details={
                "text": text,
                "reason": "rejected by the engine",
                "engine_message": engine_message,
            },
        )


class InvalidEncoding(FaissError):
    """Text crossing the engine boundary is not valid UTF-8."""

    @classmethod
    def from_exception(cls, exc: UnicodeError, what: str = "description") -> "InvalidEncoding":
        return cls(
            code=ErrorCode.INVALID_ENCODING,
            message=f"Invalid UTF-8 in {what}: {exc}",
            details={"what": what, "reason": str(exc)},
        )


class DimensionMismatch(FaissError):
    """A flat buffer does not line up with the index dimensionality."""

    @property
    def expected(self) -> int:
        return self.details["expected"]

    @property
    def actual(self) -> int:
        return self.details["actual"]

    @classmethod
    def vectors(cls, expected: int, actual: int) -> "DimensionMismatch":
        return cls(
            code=ErrorCode.DIMENSION_MISMATCH,
            message=(
                f"Dimension mismatch: vector data of length {actual} "
                f"does not form rows of width d={expected}"
            ),
            details={"expected": expected, "actual": actual, "what": "vectors"},
        )

    @classmethod
    def ids(cls, expected: int, actual: int) -> "DimensionMismatch":
        return cls(
            code=ErrorCode.DIMENSION_MISMATCH,
            message=f"Id count mismatch: expected {expected} ids, got {actual}",
            details={"expected": expected, "actual": actual, "what": "ids"},
        )


class NullPointer(FaissError):
    """The engine handed back no usable handle."""

    @classmethod
    def missing(cls, what: str) -> "NullPointer":
        return cls(
            code=ErrorCode.NULL_POINTER,
            message=f"Engine returned no {what}",
            details={"what": what},
        )


# =============================================================================
# CONTRACT VIOLATIONS (raised, never returned)
# =============================================================================
class ContractViolation(RuntimeError):
    """A caller broke an ownership rule; the program is at fault."""

    @classmethod
    def consumed(cls, what: str) -> "ContractViolation":
        return cls(f"{what} handle was consumed by a migration and must not be used")

    @classmethod
    def released(cls, what: str) -> "ContractViolation":
        return cls(f"{what} handle was already released")

    @classmethod
    def resources_in_use(cls, dependents: int) -> "ContractViolation":
        return cls(
            f"GPU resources still back {dependents} live index(es); "
            "move them to the host or drop them first"
        )


# =============================================================================
# ENGINE BOUNDARY
# =============================================================================
def native_call(
    fn: Callable[..., T],
    *args: Any,
    operation: str = "",
    **kwargs: Any,
) -> Result[T, FaissError]:
    """
    Issue one call into the engine and translate its failure signal.

    Returns:
        Ok(return value) or Err(NativeFailure) built from the raised exception
    """
    try:
        value = fn(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        error = NativeFailure.from_exception(exc, operation or getattr(fn, "__name__", ""))
        logger.warning("engine call failed: %s", error)
        return Err(error)
    return Ok(value)


def require(value: Optional[T], what: str) -> Result[T, FaissError]:
    """Guard against the engine returning no handle."""
    if value is None:
        return Err(NullPointer.missing(what))
    return Ok(value)
