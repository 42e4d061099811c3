from __future__ import annotations

from pydantic import BaseModel, Field

from ..conflicts import ResolutionStrategy, Severity


class ActivityIn(BaseModel):
    """1 日分の予定。start_time は HH:MM（未設定なら衝突判定の対象外）。"""

    id: str = Field(min_length=1)
    title: str = ""
    start_time: str | None = Field(default=None, description="HH:MM")
    duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)
    activity_type: str = Field(
        default="task",
        description="study / class / meeting / break / assignment / task / event",
    )


class ConflictOut(BaseModel):
    activity: ActivityIn
    overlap_minutes: int
    severity: Severity


class SlotSuggestionOut(BaseModel):
    start: str
    end: str
    duration_minutes: int
    score: int
    label: str


class FreeSlotOut(BaseModel):
    start: str
    end: str
    duration_minutes: int


class ConflictCheckRequest(BaseModel):
    activity: ActivityIn
    existing: list[ActivityIn] = Field(default_factory=list)


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicts: list[ConflictOut] = Field(default_factory=list)
    suggestions: list[SlotSuggestionOut] = Field(default_factory=list)


class FreeSlotsRequest(BaseModel):
    existing: list[ActivityIn] = Field(default_factory=list)
    min_duration: int = Field(default=30, ge=1)


class FreeSlotsResponse(BaseModel):
    slots: list[FreeSlotOut] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    conflicting: list[ActivityIn] = Field(default_factory=list)
    activities: list[ActivityIn] = Field(default_factory=list)
    strategy: ResolutionStrategy = ResolutionStrategy.optimal


class RescheduledOut(BaseModel):
    activity: ActivityIn
    original_start_time: str | None = None
    start_time: str


class ResolveResponse(BaseModel):
    rescheduled: list[RescheduledOut] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list, description="空き枠が見つからなかった予定ID")
