from fastapi import APIRouter, Depends

from ..deps import get_app_store, get_grader
from ..grading import AnswerGrader
from ..logging import logger
from ..models.quiz import (
    AnswerRecordOut,
    GradeAnswerRequest,
    GradeAnswerResponse,
    QuizAttemptRequest,
    QuizAttemptResponse,
)
from ..quiz import QuizQuestion, score_quiz
from ..store import AppFirestoreStore

router = APIRouter(tags=["quiz"])


@router.post("/grade-answer", response_model=GradeAnswerResponse)
def grade_answer(
    req: GradeAnswerRequest,
    grader: AnswerGrader = Depends(get_grader),
) -> GradeAnswerResponse:
    """記述式回答 1 件を採点する（保存はしない）。"""
    result = grader.grade(req.user_answer, req.reference_answer)
    return GradeAnswerResponse(is_correct=result.is_correct, similarity=result.similarity)


@router.post("/{quiz_id}/attempts", response_model=QuizAttemptResponse)
def submit_attempt(
    quiz_id: str,
    req: QuizAttemptRequest,
    store: AppFirestoreStore = Depends(get_app_store),
    grader: AnswerGrader = Depends(get_grader),
) -> QuizAttemptResponse:
    """クイズの回答を採点し、結果を保存する。

    保存に失敗しても採点結果は返し、``persisted=false`` で知らせる。
    """
    questions = [
        QuizQuestion(
            id=q.id,
            question_type=q.question_type,
            prompt=q.prompt,
            correct_answer=q.correct_answer,
            options=tuple(q.options),
            explanation=q.explanation,
        )
        for q in req.questions
    ]
    attempt = score_quiz(
        questions,
        req.answers,
        time_spent_seconds=req.time_spent_seconds,
        grader=grader,
    )

    attempt_id: str | None = None
    try:
        attempt_id = store.save_quiz_attempt(quiz_id, attempt)
    except Exception as exc:
        logger.warning(
            "quiz_attempt_persist_failed",
            quiz_id=quiz_id,
            error=repr(exc),
            error_class=exc.__class__.__name__,
        )

    return QuizAttemptResponse(
        quiz_id=quiz_id,
        attempt_id=attempt_id,
        persisted=attempt_id is not None,
        score=attempt.score,
        total_questions=attempt.total_questions,
        percentage=attempt.percentage,
        time_spent_seconds=attempt.time_spent_seconds,
        answers=[
            AnswerRecordOut(
                question_id=r.question_id,
                prompt=r.prompt,
                question_type=r.question_type,
                user_answer=r.user_answer,
                correct_answer=r.correct_answer,
                is_correct=r.is_correct,
                similarity=r.similarity,
                explanation=r.explanation,
            )
            for r in attempt.answers
        ],
    )
