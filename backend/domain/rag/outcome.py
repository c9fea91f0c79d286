"""
Tagged stage results shared by every pipeline stage
"""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class StageStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    EMPTY = "empty"


class StageOutcome(BaseModel, Generic[T]):
    """
    Result of one pipeline stage.

    OK carries a value, DEGRADED carries a usable value produced by a
    fallback path plus the reason, EMPTY carries only the reason.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: StageStatus
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "StageOutcome[T]":
        return cls(status=StageStatus.OK, value=value)

    @classmethod
    def degraded(cls, value: T, reason: str) -> "StageOutcome[T]":
        return cls(status=StageStatus.DEGRADED, value=value, reason=reason)

    @classmethod
    def empty(cls, reason: str) -> "StageOutcome[T]":
        return cls(status=StageStatus.EMPTY, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == StageStatus.OK

    @property
    def is_degraded(self) -> bool:
        return self.status == StageStatus.DEGRADED

    @property
    def is_empty(self) -> bool:
        return self.status == StageStatus.EMPTY
