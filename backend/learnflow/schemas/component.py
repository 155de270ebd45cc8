# backend/learnflow/schemas/component.py
"""Pydantic schemas for component variant payloads.

A component is one of three variants. The variant is a closed set: the
``type`` field discriminates the payload and each payload carries only its
own fields.
"""
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class ArticlePayload(BaseModel):
    type: Literal["article"] = "article"
    body: str = ""
    reading_time_minutes: int = Field(default=5, ge=0)


class QuizOption(BaseModel):
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuizQuestion(BaseModel):
    text: str = Field(..., min_length=1)
    options: List[QuizOption] = Field(..., min_length=2)

    @model_validator(mode="after")
    def check_has_correct_option(self):
        if not any(o.is_correct for o in self.options):
            raise ValueError(f"Question '{self.text}' has no correct option")
        return self

    @property
    def correct_indexes(self) -> set:
        return {i for i, o in enumerate(self.options) if o.is_correct}


class QuizPayload(BaseModel):
    type: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion] = Field(..., min_length=1)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    shuffle_questions: bool = False

    def score(self, answers: Dict[int, List[int]]) -> int:
        """Percentage of questions whose selected options exactly match the correct ones."""
        correct = 0
        for index, question in enumerate(self.questions):
            selected = answers.get(index)
            if selected is not None and set(selected) == question.correct_indexes:
                correct += 1
        return round(100 * correct / len(self.questions))


class TaskPayload(BaseModel):
    type: Literal["task"] = "task"
    instructions: str = Field(..., min_length=1)
    # Code word handed to the learner once the task is done in the real world
    verification_secret: Optional[str] = None
    case_sensitive: bool = False

    @property
    def requires_answer(self) -> bool:
        return bool(self.verification_secret and self.verification_secret.strip())

    def check_answer(self, answer: Optional[str]) -> bool:
        """Compare a submitted code word with the secret, ignoring surrounding whitespace."""
        if not self.requires_answer:
            return True
        if answer is None or not str(answer).strip():
            return False
        expected = self.verification_secret.strip()
        given = str(answer).strip()
        if self.case_sensitive:
            return given == expected
        return given.casefold() == expected.casefold()


ComponentPayload = Annotated[
    Union[ArticlePayload, QuizPayload, TaskPayload],
    Field(discriminator="type"),
]

_payload_adapter = TypeAdapter(ComponentPayload)


def parse_payload(data: dict) -> Union[ArticlePayload, QuizPayload, TaskPayload]:
    """Validate a stored or submitted payload dict into its variant model."""
    return _payload_adapter.validate_python(data)


def learner_view(data: dict) -> dict:
    """Copy of a stored payload without the fields that give answers away."""
    if not isinstance(data, dict):
        return data
    view = dict(data)
    kind = view.get("type")
    if kind == "task":
        view.pop("verification_secret", None)
    elif kind == "quiz":
        view["questions"] = [
            {
                **question,
                "options": [
                    {k: v for k, v in option.items() if k != "is_correct"}
                    for option in question.get("options", [])
                ],
            }
            for question in view.get("questions", [])
        ]
    return view
