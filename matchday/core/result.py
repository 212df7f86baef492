"""
Result type for calls that cross the network boundary.

Remote operations never raise into views. They return either `Success`
carrying the decoded payload or `Failure` carrying one of the error records
below, and callers branch on it:

    result = await api.read("public_open_matches", seasonId="S1")
    match result:
        case Success(payload):
            ...
        case Failure(error):
            logger.info("open matches unavailable: %s", error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union, cast

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """Represents a successful operation result."""

    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, _default: T) -> T:
        return self.value

    def map(self, func: Callable[[T], U]) -> Result[U, E]:
        """Transform the success value."""
        try:
            return Success(func(self.value))
        except Exception as e:
            return Failure(cast(E, e))

    def flat_map(self, func: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain operations that return Results."""
        try:
            return func(self.value)
        except Exception as e:
            return Failure(cast(E, e))

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    """Represents a failed operation result."""

    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raises the error when trying to extract value."""
        if isinstance(self.error, Exception):
            raise self.error
        raise RuntimeError(f"Operation failed: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, _func: Callable[[T], U]) -> Result[U, E]:
        return cast(Result[U, E], self)

    def flat_map(self, _func: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return cast(Result[U, E], self)

    def __repr__(self) -> str:
        return f"Failure({self.error!r})"


Result = Union[Success[T], Failure[E]]


def success(value: T) -> Success[T]:
    return Success(value)


def failure(error: E) -> Failure[E]:
    return Failure(error)


@dataclass(frozen=True, slots=True)
class NetworkError:
    """Transport-level failure (connection refused, timeout, bad JSON)."""

    operation: str
    message: str
    original_exception: Exception | None = None

    def __str__(self) -> str:
        return f"Network error during {self.operation}: {self.message}"


@dataclass(frozen=True, slots=True)
class ApiError:
    """The API answered but reported `ok != true`."""

    operation: str
    message: str
    status: int | None = None

    def __str__(self) -> str:
        return self.message or f"{self.operation} failed"


__all__ = [
    "ApiError",
    "Failure",
    "NetworkError",
    "Result",
    "Success",
    "failure",
    "success",
]
