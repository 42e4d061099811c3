"""Calendar conflict detection and alternative slot suggestions.

1 日分の予定（開始時刻 ``HH:MM`` と所要時間）を分単位の区間に変換し、

- 新しい予定と既存予定の重なり（overlap 分数と深刻度）
- 06:00〜23:00 の空き枠
- 活動種別ごとの好ましい時間帯に基づく代替枠のスコアリング
- 衝突している予定の自動再配置

を計算する。いずれも副作用のない計算で、永続化は呼び出し側が行う。
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

DAY_START_MINUTES = 6 * 60
DAY_END_MINUTES = 23 * 60
SLOT_INCREMENT_MINUTES = 15
DEFAULT_DURATION_MINUTES = 60
DEFAULT_SUGGESTION_LIMIT = 3
DEFAULT_SLOT_LIMIT = 5

_BASE_SCORE = 100
_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")


class Severity(str, Enum):
    partial = "partial"
    major = "major"
    complete = "complete"


class ResolutionStrategy(str, Enum):
    optimal = "optimal"
    earliest = "earliest"
    latest = "latest"


@dataclass(frozen=True)
class Activity:
    id: str
    title: str = ""
    start_time: str | None = None
    duration_minutes: int | None = None
    activity_type: str = "task"


@dataclass(frozen=True)
class Conflict:
    activity: Activity
    overlap_minutes: int
    severity: Severity


@dataclass(frozen=True)
class FreeSlot:
    start: str
    end: str
    duration_minutes: int


@dataclass(frozen=True)
class SlotSuggestion:
    start: str
    end: str
    duration_minutes: int
    score: int
    label: str


@dataclass(frozen=True)
class ConflictReport:
    conflicts: list[Conflict] = field(default_factory=list)
    suggestions: list[SlotSuggestion] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


@dataclass(frozen=True)
class RescheduledActivity:
    activity: Activity
    original_start_time: str | None
    start_time: str


def parse_clock(value: str | None) -> int | None:
    """Convert ``HH:MM`` (optionally ``HH:MM:SS``) into minutes since midnight.

    解釈できない値は ``None``（＝時刻未設定として無視）を返す。
    """

    if not value:
        return None
    match = _CLOCK_RE.match(str(value))
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def severity_for(overlap_minutes: int, duration_minutes: int) -> Severity:
    """Classify an overlap relative to the new activity's own length.

    overlap が新規予定の全区間を覆えば complete、半分以上（ちょうど 50% を含む）
    なら major、それ未満は partial。
    """

    if overlap_minutes >= duration_minutes:
        return Severity.complete
    if overlap_minutes * 2 >= duration_minutes:
        return Severity.major
    return Severity.partial


def slot_label(score: int) -> str:
    if score >= 140:
        return "Optimal"
    if score >= 120:
        return "Great"
    if score >= 100:
        return "Good"
    return "Available"


def _type_bonus(activity_type: str, hour: int) -> int:
    kind = (activity_type or "task").lower()
    if kind == "study":
        if 9 <= hour < 11:
            return 30
        if 14 <= hour < 16:
            return 20
        if hour >= 18:
            return -10
        return 0
    if kind in ("class", "meeting"):
        return 20 if 9 <= hour < 17 else -15
    if kind == "break":
        if 12 <= hour < 13:
            return 25
        if 15 <= hour < 16:
            return 20
        return 0
    if kind in ("assignment", "task"):
        if 8 <= hour < 12:
            return 25
        if 14 <= hour < 18:
            return 10
        return 0
    return 0


def score_slot(activity_type: str, start_minutes: int, spare_minutes: int) -> int:
    """Score a candidate start time.

    基準 100 点に、活動種別ごとの時間帯ボーナス、余裕時間ボーナス
    （30 分ごとに +5、上限 20）、早朝（7 時前 -15）・深夜（21 時以降 -10）の
    減点を加える。
    """

    hour = start_minutes // 60
    score = _BASE_SCORE + _type_bonus(activity_type, hour)
    score += min(20, max(0, spare_minutes) // 30 * 5)
    if hour < 7:
        score -= 15
    if hour >= 21:
        score -= 10
    return score


class ConflictResolver:
    """Overlap detection and slot suggestions within one schedulable day."""

    def __init__(
        self,
        *,
        day_start: int = DAY_START_MINUTES,
        day_end: int = DAY_END_MINUTES,
        slot_increment: int = SLOT_INCREMENT_MINUTES,
        default_duration: int = DEFAULT_DURATION_MINUTES,
    ) -> None:
        self.day_start = day_start
        self.day_end = day_end
        self.slot_increment = max(1, slot_increment)
        self.default_duration = default_duration

    def _duration(self, activity: Activity) -> int:
        if activity.duration_minutes is None or activity.duration_minutes <= 0:
            return self.default_duration
        return int(activity.duration_minutes)

    def _timed(self, activities: Iterable[Activity]) -> list[tuple[int, int, Activity]]:
        spans: list[tuple[int, int, Activity]] = []
        for activity in activities:
            start = parse_clock(activity.start_time)
            if start is None:
                continue
            spans.append((start, start + self._duration(activity), activity))
        spans.sort(key=lambda span: (span[0], span[1]))
        return spans

    def detect_conflicts(
        self,
        new_activity: Activity,
        existing: Sequence[Activity],
        *,
        limit: int = DEFAULT_SUGGESTION_LIMIT,
    ) -> ConflictReport:
        suggestions = self.suggest_slots(new_activity, existing, limit=limit)
        new_start = parse_clock(new_activity.start_time)
        if new_start is None:
            return ConflictReport(conflicts=[], suggestions=suggestions)

        duration = self._duration(new_activity)
        new_end = new_start + duration
        conflicts: list[Conflict] = []
        for start, end, activity in self._timed(
            a for a in existing if a.id != new_activity.id
        ):
            if new_start < end and start < new_end:
                overlap = min(new_end, end) - max(new_start, start)
                conflicts.append(
                    Conflict(
                        activity=activity,
                        overlap_minutes=overlap,
                        severity=severity_for(overlap, duration),
                    )
                )
        return ConflictReport(conflicts=conflicts, suggestions=suggestions)

    def find_free_slots(
        self,
        existing: Sequence[Activity],
        *,
        min_duration: int = 30,
    ) -> list[FreeSlot]:
        slots: list[FreeSlot] = []
        cursor = self.day_start
        for start, end, _ in self._timed(existing):
            gap_end = min(start, self.day_end)
            if gap_end - cursor >= min_duration:
                slots.append(
                    FreeSlot(
                        start=format_clock(cursor),
                        end=format_clock(gap_end),
                        duration_minutes=gap_end - cursor,
                    )
                )
            cursor = max(cursor, end)
            if cursor >= self.day_end:
                break
        if self.day_end - cursor >= min_duration:
            slots.append(
                FreeSlot(
                    start=format_clock(cursor),
                    end=format_clock(self.day_end),
                    duration_minutes=self.day_end - cursor,
                )
            )
        return slots

    def suggest_slots(
        self,
        activity: Activity,
        existing: Sequence[Activity],
        *,
        limit: int = DEFAULT_SLOT_LIMIT,
    ) -> list[SlotSuggestion]:
        duration = self._duration(activity)
        others = [a for a in existing if a.id != activity.id]
        candidates: list[tuple[int, SlotSuggestion]] = []
        for slot in self.find_free_slots(others, min_duration=duration):
            gap_start = parse_clock(slot.start)
            gap_end = gap_start + slot.duration_minutes  # type: ignore[operator]
            start = math.ceil(gap_start / self.slot_increment) * self.slot_increment  # type: ignore[operator]
            available = gap_end - start
            if available < duration:
                continue
            score = score_slot(activity.activity_type, start, available - duration)
            candidates.append(
                (
                    start,
                    SlotSuggestion(
                        start=format_clock(start),
                        end=slot.end,
                        duration_minutes=available,
                        score=score,
                        label=slot_label(score),
                    ),
                )
            )
        candidates.sort(key=lambda item: (-item[1].score, item[0]))
        return [suggestion for _, suggestion in candidates[: max(0, limit)]]

    def resolve_conflicts(
        self,
        conflicting: Sequence[Activity],
        all_activities: Sequence[Activity],
        *,
        strategy: ResolutionStrategy | str = ResolutionStrategy.optimal,
    ) -> list[RescheduledActivity]:
        """Move each conflicting activity into a suggested slot.

        配置済みの予定は次の予定の計算で固定扱いにする。候補が無い予定は
        結果に含めない。
        """

        try:
            chosen = ResolutionStrategy(strategy)
        except ValueError:
            chosen = ResolutionStrategy.optimal

        moving_ids = {activity.id for activity in conflicting}
        fixed = [a for a in all_activities if a.id not in moving_ids]
        rescheduled: list[RescheduledActivity] = []
        for activity in conflicting:
            suggestions = self.suggest_slots(activity, fixed, limit=DEFAULT_SLOT_LIMIT)
            if not suggestions:
                continue
            if chosen is ResolutionStrategy.earliest:
                picked = min(suggestions, key=lambda s: parse_clock(s.start))
            elif chosen is ResolutionStrategy.latest:
                picked = max(suggestions, key=lambda s: parse_clock(s.start))
            else:
                picked = suggestions[0]
            placed = replace(activity, start_time=picked.start)
            rescheduled.append(
                RescheduledActivity(
                    activity=placed,
                    original_start_time=activity.start_time,
                    start_time=picked.start,
                )
            )
            fixed.append(placed)
        return rescheduled


_default_resolver = ConflictResolver()


def detect_conflicts(
    new_activity: Activity,
    existing: Sequence[Activity],
    *,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> ConflictReport:
    return _default_resolver.detect_conflicts(new_activity, existing, limit=limit)


def find_free_slots(existing: Sequence[Activity], *, min_duration: int = 30) -> list[FreeSlot]:
    return _default_resolver.find_free_slots(existing, min_duration=min_duration)


def suggest_slots(
    activity: Activity,
    existing: Sequence[Activity],
    *,
    limit: int = DEFAULT_SLOT_LIMIT,
) -> list[SlotSuggestion]:
    return _default_resolver.suggest_slots(activity, existing, limit=limit)


def resolve_conflicts(
    conflicting: Sequence[Activity],
    all_activities: Sequence[Activity],
    *,
    strategy: ResolutionStrategy | str = ResolutionStrategy.optimal,
) -> list[RescheduledActivity]:
    return _default_resolver.resolve_conflicts(
        conflicting, all_activities, strategy=strategy
    )
