"""
Outcome type returned by the video probe adapter.

Probe failures are expected (tool missing, timeout, unreadable container), so
the adapter reports them as data and the metadata service decides which become
`ExternalCommandError`.
"""
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from .types import ErrorCode

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: str = "OK"
    # exit_code / stderr of a failed probe run
    meta: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def Ok(data: T) -> "Result[T]":
        return Result(ok=True, data=data)

    @staticmethod
    def Err(code: ErrorCode | str, error: str, **meta: Any) -> "Result[T]":
        """`code` is an `ErrorCode` or the `code` of another failed Result."""
        return Result(ok=False, error=error, code=str(code.value if isinstance(code, ErrorCode) else code), meta=meta)
