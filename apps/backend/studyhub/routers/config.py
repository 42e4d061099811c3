from fastapi import APIRouter

from ..config import settings


router = APIRouter()


@router.get("/config")
def get_runtime_config() -> dict[str, object]:
    """Expose runtime thresholds the frontend mirrors.

    フロントエンドが採点表示や予定表示を合わせるためのしきい値を返す。
    """
    return {
        "request_timeout_ms": settings.llm_timeout_ms,
        "grading_correct_threshold": settings.grading_correct_threshold,
        "study_mastery_rating": settings.study_mastery_rating,
        "schedule_day_start": settings.schedule_day_start,
        "schedule_day_end": settings.schedule_day_end,
        "schedule_slot_increment_minutes": settings.schedule_slot_increment_minutes,
    }
