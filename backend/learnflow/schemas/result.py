# backend/learnflow/schemas/result.py
from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from learnflow.errors import ErrorKind, LearnflowError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Outcome of an exposed operation: a value, or one expected error kind."""
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    facts: List = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, facts: Optional[List] = None, message: str = "") -> "OperationResult[T]":
        return cls(value=value, facts=list(facts or []), message=message)

    @classmethod
    def failure(cls, exc: LearnflowError) -> "OperationResult[T]":
        return cls(error=exc.kind, message=exc.message)


@dataclass
class IntegrityReport:
    """Diagnostic result of a snapshot integrity check."""
    valid: bool
    reasons: List[str] = field(default_factory=list)
