# backend/learnflow/schemas/__init__.py
from learnflow.schemas.component import ArticlePayload, QuizPayload, TaskPayload, parse_payload
from learnflow.schemas.facts import (
    Fact, FlowAssigned, StepUnlocked, FlowCompleted, DeadlineApproaching, AssignmentOverdue,
)
from learnflow.schemas.result import OperationResult, IntegrityReport
