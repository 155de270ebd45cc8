# backend/learnflow/errors.py
"""Error taxonomy shared by every service.

Services raise these; the coordinator turns them into ``OperationResult``
failures. Anything that is not a ``LearnflowError`` is an unexpected fault and
propagates unchanged.
"""
import threading
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PRECONDITION_FAILED = "precondition_failed"
    INVALID_ARGUMENT = "invalid_argument"


class LearnflowError(Exception):
    """Base class for expected business failures."""
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LearnflowError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(LearnflowError):
    kind = ErrorKind.CONFLICT


class PreconditionFailedError(LearnflowError):
    kind = ErrorKind.PRECONDITION_FAILED

    def __init__(self, message: str, blocking_id: Optional[object] = None):
        super().__init__(message)
        self.blocking_id = blocking_id


class InvalidArgumentError(LearnflowError):
    kind = ErrorKind.INVALID_ARGUMENT


class OperationCancelled(Exception):
    """Raised when a caller's cancellation signal is set mid-operation."""
    pass


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Operation cancelled by caller")
