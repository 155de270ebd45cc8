# backend/tests/unit/test_component_payload.py
"""Unit tests for component payload schemas."""
import pytest
from pydantic import ValidationError

from learnflow.schemas.component import ArticlePayload, QuizPayload, TaskPayload, learner_view, parse_payload


def quiz_data():
    return {
        "type": "quiz",
        "questions": [
            {"text": "2 + 2?", "options": [{"text": "3"}, {"text": "4", "is_correct": True}]},
            {
                "text": "Pick the primes",
                "options": [
                    {"text": "2", "is_correct": True},
                    {"text": "3", "is_correct": True},
                    {"text": "4"},
                ],
            },
        ],
    }


class TestParsePayload:
    def test_discriminates_on_type(self):
        assert isinstance(parse_payload({"type": "article", "body": "x"}), ArticlePayload)
        assert isinstance(parse_payload(quiz_data()), QuizPayload)
        assert isinstance(parse_payload({"type": "task", "instructions": "Do it"}), TaskPayload)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_payload({"type": "video"})

    def test_question_without_correct_option_rejected(self):
        data = quiz_data()
        data["questions"][0]["options"][1]["is_correct"] = False
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(data)
        assert "no correct option" in str(exc_info.value)

    def test_task_requires_instructions(self):
        with pytest.raises(ValidationError):
            parse_payload({"type": "task"})


class TestQuizScore:
    def test_all_correct(self):
        quiz = parse_payload(quiz_data())
        assert quiz.score({0: [1], 1: [0, 1]}) == 100

    def test_partial_selection_is_wrong(self):
        quiz = parse_payload(quiz_data())
        assert quiz.score({0: [1], 1: [0]}) == 50

    def test_unanswered(self):
        quiz = parse_payload(quiz_data())
        assert quiz.score({}) == 0


class TestTaskAnswer:
    def test_without_secret_anything_passes(self):
        task = TaskPayload(instructions="Meet your buddy")
        assert task.check_answer(None) is True

    @pytest.mark.parametrize("answer,expected", [
        ("Falcon", True),
        ("  falcon ", True),
        ("FALCON", True),
        ("eagle", False),
        ("   ", False),
        (None, False),
    ])
    def test_case_insensitive_by_default(self, answer, expected):
        task = TaskPayload(instructions="Ask reception", verification_secret="Falcon")
        assert task.check_answer(answer) is expected

    def test_case_sensitive(self):
        task = TaskPayload(instructions="Ask reception", verification_secret="Falcon", case_sensitive=True)
        assert task.check_answer(" Falcon") is True
        assert task.check_answer("falcon") is False


class TestLearnerView:
    def test_task_secret_removed(self):
        stored = parse_payload(
            {"type": "task", "instructions": "Ask reception", "verification_secret": "Falcon"}
        ).model_dump(mode="json")

        view = learner_view(stored)

        assert "verification_secret" not in view
        assert view["instructions"] == "Ask reception"
        assert stored["verification_secret"] == "Falcon"

    def test_quiz_answer_key_removed(self):
        stored = parse_payload(quiz_data()).model_dump(mode="json")

        view = learner_view(stored)

        assert view["questions"][1]["options"] == [{"text": "2"}, {"text": "3"}, {"text": "4"}]
        assert view["questions"][1]["text"] == "Pick the primes"
        assert stored["questions"][1]["options"][0]["is_correct"] is True

    def test_article_unchanged(self):
        assert learner_view({"type": "article", "body": "x"}) == {"type": "article", "body": "x"}
