"""Quiz scoring across multiple choice, true/false and short answer questions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .grading import AnswerGrader


class QuestionType(str, Enum):
    multiple_choice = "multiple_choice"
    true_false = "true_false"
    short_answer = "short_answer"


@dataclass(frozen=True)
class QuizQuestion:
    id: str
    question_type: QuestionType
    prompt: str
    correct_answer: str
    options: tuple[str, ...] = ()
    explanation: str | None = None

    def __post_init__(self) -> None:
        if self.question_type is QuestionType.multiple_choice:
            if self.correct_answer not in self.options:
                raise ValueError(
                    f"question {self.id}: correct answer must be one of the options"
                )
        elif self.options:
            raise ValueError(f"question {self.id}: options are only allowed for multiple choice")


@dataclass(frozen=True)
class AnswerRecord:
    question_id: str
    prompt: str
    question_type: QuestionType
    user_answer: str
    correct_answer: str
    is_correct: bool
    similarity: float | None = None
    explanation: str | None = None


@dataclass(frozen=True)
class QuizAttempt:
    score: int
    total_questions: int
    percentage: float
    time_spent_seconds: int
    answers: list[AnswerRecord] = field(default_factory=list)


def _normalise_boolean(value: str | None) -> str:
    return str(value or "").strip().lower()


def score_quiz(
    questions: Sequence[QuizQuestion],
    answers: Mapping[str, str],
    *,
    time_spent_seconds: int = 0,
    grader: AnswerGrader | None = None,
) -> QuizAttempt:
    """Score every question; unanswered questions count as wrong.

    - multiple_choice: 選択肢の完全一致
    - true_false: 大文字小文字を無視した "true"/"false" の一致
    - short_answer: AnswerGrader による類似度判定（類似度も記録する）
    """

    grader = grader or AnswerGrader()
    records: list[AnswerRecord] = []
    for question in questions:
        user_answer = answers.get(question.id) or ""
        similarity: float | None = None
        if question.question_type is QuestionType.short_answer:
            result = grader.grade(user_answer, question.correct_answer)
            is_correct, similarity = result.is_correct, result.similarity
        elif question.question_type is QuestionType.true_false:
            is_correct = bool(user_answer.strip()) and (
                _normalise_boolean(user_answer) == _normalise_boolean(question.correct_answer)
            )
        else:
            is_correct = user_answer == question.correct_answer
        records.append(
            AnswerRecord(
                question_id=question.id,
                prompt=question.prompt,
                question_type=question.question_type,
                user_answer=user_answer,
                correct_answer=question.correct_answer,
                is_correct=is_correct,
                similarity=similarity,
                explanation=question.explanation,
            )
        )

    score = sum(1 for record in records if record.is_correct)
    total = len(records)
    return QuizAttempt(
        score=score,
        total_questions=total,
        percentage=(score / total * 100) if total else 0.0,
        time_spent_seconds=max(0, int(time_spent_seconds)),
        answers=records,
    )
