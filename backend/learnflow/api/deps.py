# learnflow/api/deps.py
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from learnflow.database import get_db
from learnflow.errors import ErrorKind, LearnflowError
from learnflow.schemas.result import OperationResult
from learnflow.services.assignment_coordinator import AssignmentCoordinator
from learnflow.services.fact_dispatcher import FactDispatcher

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PRECONDITION_FAILED: status.HTTP_412_PRECONDITION_FAILED,
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
}

DBSession = Annotated[Session, Depends(get_db)]


def get_fact_dispatcher() -> Optional[FactDispatcher]:
    return FactDispatcher()


def get_coordinator(
    db: DBSession,
    dispatcher: Annotated[Optional[FactDispatcher], Depends(get_fact_dispatcher)],
) -> AssignmentCoordinator:
    return AssignmentCoordinator(db, dispatcher=dispatcher)


Coordinator = Annotated[AssignmentCoordinator, Depends(get_coordinator)]


def http_error(kind: ErrorKind, message: str) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS[kind], detail={"error": kind.value, "message": message})


def unwrap(result: OperationResult):
    """Return the result value or raise the matching HTTP error."""
    if not result.ok:
        raise http_error(result.error, result.message)
    return result.value


def raise_http(exc: LearnflowError) -> None:
    raise http_error(exc.kind, exc.message) from exc
