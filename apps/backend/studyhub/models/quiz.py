from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from ..quiz import QuestionType


class GradeAnswerRequest(BaseModel):
    user_answer: str = Field(default="", description="学習者の回答")
    reference_answer: str = Field(min_length=1, description="参照解答")


class GradeAnswerResponse(BaseModel):
    is_correct: bool
    similarity: float = Field(ge=0.0, le=1.0)


class QuizQuestionIn(BaseModel):
    """クイズの設問。multiple_choice のときだけ options を持つ。"""

    id: str = Field(min_length=1)
    question_type: QuestionType = Field(description="multiple_choice / true_false / short_answer")
    prompt: str = Field(min_length=1)
    correct_answer: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)
    explanation: str | None = None

    @model_validator(mode="after")
    def _check_options(self) -> "QuizQuestionIn":
        if self.question_type is QuestionType.multiple_choice:
            if self.correct_answer not in self.options:
                raise ValueError("correct_answer must be one of options")
        elif self.options:
            raise ValueError("options are only allowed for multiple_choice questions")
        return self


class QuizAttemptRequest(BaseModel):
    questions: list[QuizQuestionIn] = Field(default_factory=list)
    answers: dict[str, str] = Field(default_factory=dict, description="question id → 回答")
    time_spent_seconds: int = Field(default=0, ge=0)


class AnswerRecordOut(BaseModel):
    question_id: str
    prompt: str
    question_type: QuestionType
    user_answer: str
    correct_answer: str
    is_correct: bool
    similarity: float | None = None
    explanation: str | None = None


class QuizAttemptResponse(BaseModel):
    quiz_id: str
    attempt_id: str | None = Field(default=None, description="保存に失敗した場合は null")
    persisted: bool
    score: int
    total_questions: int
    percentage: float
    time_spent_seconds: int
    answers: list[AnswerRecordOut] = Field(default_factory=list)
