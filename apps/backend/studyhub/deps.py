"""FastAPI dependencies that build the calculators from settings.

ルーターはここ経由で計算器・ストア・課題パーサを受け取る。テストでは
``app.dependency_overrides`` で差し替える。
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from .assignment_parser import AssignmentParser, LLMAssignmentParser
from .config import settings
from .conflicts import ConflictResolver
from .grading import AnswerGrader
from .providers import get_llm_provider
from .scheduler import ReviewScheduler
from .store import AppFirestoreStore, get_store
from .study_session import ReviewRecorder, StudyCard, StudySession


def get_app_store() -> AppFirestoreStore:
    return get_store()


def get_scheduler() -> ReviewScheduler:
    return ReviewScheduler(ease_floor=settings.srs_ease_floor)


def get_grader() -> AnswerGrader:
    return AnswerGrader(threshold=settings.grading_correct_threshold)


def get_conflict_resolver() -> ConflictResolver:
    return ConflictResolver(
        day_start=settings.schedule_day_start,
        day_end=settings.schedule_day_end,
        slot_increment=settings.schedule_slot_increment_minutes,
        default_duration=settings.schedule_default_duration_minutes,
    )


def get_assignment_parser() -> AssignmentParser:
    return LLMAssignmentParser(get_llm_provider())


def make_study_session(
    cards: Sequence[StudyCard],
    *,
    recorder: ReviewRecorder | None = None,
    today: date | None = None,
) -> StudySession:
    """Start a session using the configured scheduler and mastery threshold."""

    return StudySession(
        cards,
        scheduler=get_scheduler(),
        recorder=recorder,
        today=today,
        mastery_rating=settings.study_mastery_rating,
    )
