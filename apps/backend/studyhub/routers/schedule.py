from dataclasses import asdict

from fastapi import APIRouter, Depends

from ..config import settings
from ..conflicts import Activity, ConflictResolver
from ..deps import get_conflict_resolver
from ..models.schedule import (
    ActivityIn,
    ConflictCheckRequest,
    ConflictCheckResponse,
    ConflictOut,
    FreeSlotOut,
    FreeSlotsRequest,
    FreeSlotsResponse,
    RescheduledOut,
    ResolveRequest,
    ResolveResponse,
    SlotSuggestionOut,
)

router = APIRouter(tags=["schedule"])


def _to_activity(item: ActivityIn) -> Activity:
    return Activity(
        id=item.id,
        title=item.title,
        start_time=item.start_time,
        duration_minutes=item.duration_minutes,
        activity_type=item.activity_type,
    )


def _to_model(activity: Activity) -> ActivityIn:
    return ActivityIn(**asdict(activity))


@router.post("/conflicts", response_model=ConflictCheckResponse)
def check_conflicts(
    req: ConflictCheckRequest,
    resolver: ConflictResolver = Depends(get_conflict_resolver),
) -> ConflictCheckResponse:
    """新しい予定と既存予定の重なり、および代替枠の候補を返す。"""
    report = resolver.detect_conflicts(
        _to_activity(req.activity),
        [_to_activity(item) for item in req.existing],
        limit=settings.schedule_suggestion_limit,
    )
    return ConflictCheckResponse(
        has_conflict=report.has_conflict,
        conflicts=[
            ConflictOut(
                activity=_to_model(c.activity),
                overlap_minutes=c.overlap_minutes,
                severity=c.severity,
            )
            for c in report.conflicts
        ],
        suggestions=[SlotSuggestionOut(**asdict(s)) for s in report.suggestions],
    )


@router.post("/free-slots", response_model=FreeSlotsResponse)
def free_slots(
    req: FreeSlotsRequest,
    resolver: ConflictResolver = Depends(get_conflict_resolver),
) -> FreeSlotsResponse:
    slots = resolver.find_free_slots(
        [_to_activity(item) for item in req.existing],
        min_duration=req.min_duration,
    )
    return FreeSlotsResponse(slots=[FreeSlotOut(**asdict(slot)) for slot in slots])


@router.post("/resolve", response_model=ResolveResponse)
def resolve(
    req: ResolveRequest,
    resolver: ConflictResolver = Depends(get_conflict_resolver),
) -> ResolveResponse:
    """衝突している予定を空き枠へ再配置する（optimal / earliest / latest）。"""
    conflicting = [_to_activity(item) for item in req.conflicting]
    moved = resolver.resolve_conflicts(
        conflicting,
        [_to_activity(item) for item in req.activities],
        strategy=req.strategy,
    )
    moved_ids = {item.activity.id for item in moved}
    return ResolveResponse(
        rescheduled=[
            RescheduledOut(
                activity=_to_model(item.activity),
                original_start_time=item.original_start_time,
                start_time=item.start_time,
            )
            for item in moved
        ],
        unresolved=[a.id for a in conflicting if a.id not in moved_ids],
    )
