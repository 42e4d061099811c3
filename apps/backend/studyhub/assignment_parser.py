"""Natural-language assignment parsing behind a pluggable strategy.

自由記述の課題テキスト（"Math homework due tomorrow" など）を構造化データへ
変換する。コアは ``AssignmentParser`` プロトコルだけに依存し、LLM の実体は
HTTP 層で ``providers.get_llm_provider()`` から注入する。
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Protocol

from .logging import logger

DEFAULT_TIME_ESTIMATE = "1h 30m"

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
# 最初の JSON オブジェクト（1 段のネストまで）
_JSON_OBJECT_RE = re.compile(r"\{(?:[^{}]|\{[^{}]*\})*\}", re.DOTALL)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*h", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*m(?!o)", re.IGNORECASE)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class AssignmentParseError(ValueError):
    """Raised when free text cannot be turned into an assignment."""


class Priority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


@dataclass(frozen=True)
class StructuredAssignment:
    title: str
    subject: str
    due_date: date | None
    priority: Priority
    time_estimate: str
    time_estimate_minutes: int | None


class AssignmentParser(Protocol):
    def parse(self, text: str, *, today: date) -> StructuredAssignment: ...


class SupportsComplete(Protocol):
    def complete(self, prompt: str) -> str: ...


def parse_time_estimate(value: str | None) -> int | None:
    """Convert ``"1h 30m"`` style estimates into minutes; ``None`` if unreadable."""

    if not value:
        return None
    text = str(value)
    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    if not hours and not minutes:
        return None
    total = 0.0
    if hours:
        total += float(hours.group(1)) * 60
    if minutes:
        total += int(minutes.group(1))
    return int(round(total))


def priority_for_due_date(due_date: date | None, today: date) -> Priority:
    """今日/明日締切は high、3 日以内は medium、それ以降は low（日付なしは medium）。"""

    if due_date is None:
        return Priority.medium
    days = (due_date - today).days
    if days <= 1:
        return Priority.high
    if days <= 3:
        return Priority.medium
    return Priority.low


def next_weekday_occurrences(today: date) -> dict[str, date]:
    """Next occurrence (1..7 days ahead) of every weekday."""

    occurrences: dict[str, date] = {}
    for index, name in enumerate(_WEEKDAYS):
        days_until = (index - today.weekday()) % 7 or 7
        occurrences[name] = today + timedelta(days=days_until)
    return occurrences


def build_prompt(text: str, today: date) -> str:
    tomorrow = today + timedelta(days=1)
    weekdays = next_weekday_occurrences(today)
    weekday_lines = "\n".join(
        f'- "{name}" or "this {name}" -> {day.isoformat()}' for name, day in weekdays.items()
    )
    return f"""You convert a student's assignment description into JSON.

Today: {today.isoformat()} ({today.strftime('%A')})
Tomorrow: {tomorrow.isoformat()}

Dates:
- A specific day number ("on the 17th") means this month, or next month when the day has passed.
- Weekdays mean the next occurrence:
{weekday_lines}
- "next week" = {(today + timedelta(days=7)).isoformat()}

Priority: due today or tomorrow = "high", within 3 days = "medium", later = "low".
Time estimate: use phrases like "takes 2 hours"; otherwise essay/project "2h 30m",
homework "1h 30m", quiz/test "1h", reading "45m", problem set "2h".

Return ONLY this JSON object, no prose and no code fences:
{{"title": "...", "subject": "... or null", "dueDate": "YYYY-MM-DD or null",
"priority": "high|medium|low", "timeEstimate": "Xh Ym or null"}}

Input: {text}"""


def extract_json_object(raw: str) -> dict[str, Any]:
    """Strip code fences and decode the first JSON object in ``raw``."""

    cleaned = _FENCE_RE.sub("", raw or "")
    match = _JSON_OBJECT_RE.search(cleaned)
    if not match:
        raise AssignmentParseError("response did not contain a JSON object")
    candidate = match.group(0)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            data = json.loads(re.sub(r"\s+", " ", candidate).strip())
        except json.JSONDecodeError as exc:
            raise AssignmentParseError(f"invalid JSON in response: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise AssignmentParseError("response JSON is not an object")
    return data


def _parse_due_date(value: Any) -> date | None:
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def build_assignment(data: dict[str, Any], *, today: date) -> StructuredAssignment:
    """Validate decoded fields and fill the defaults."""

    title = str(data.get("title") or "").strip()
    if not title:
        raise AssignmentParseError("assignment must have a title")

    raw_due = data.get("dueDate", data.get("due_date"))
    due_date = _parse_due_date(raw_due)
    if raw_due and due_date is None:
        logger.warning("assignment_parse_invalid_due_date", due_date=str(raw_due)[:40])

    raw_priority = str(data.get("priority") or "").strip().lower()
    try:
        priority = Priority(raw_priority)
    except ValueError:
        priority = priority_for_due_date(due_date, today)

    estimate = str(data.get("timeEstimate") or data.get("time_estimate") or "").strip()
    estimate = estimate or DEFAULT_TIME_ESTIMATE
    return StructuredAssignment(
        title=title,
        subject=str(data.get("subject") or "").strip(),
        due_date=due_date,
        priority=priority,
        time_estimate=estimate,
        time_estimate_minutes=parse_time_estimate(estimate),
    )


class LLMAssignmentParser:
    """AssignmentParser backed by any object with ``complete(prompt) -> str``."""

    def __init__(self, llm: SupportsComplete) -> None:
        self.llm = llm

    def parse(self, text: str, *, today: date) -> StructuredAssignment:
        if not text or not text.strip():
            raise AssignmentParseError("assignment text is empty")
        logger.info("assignment_parse_start", text_chars=len(text), today=today.isoformat())
        raw = self.llm.complete(build_prompt(text.strip(), today))
        if not raw or not raw.strip():
            raise AssignmentParseError("empty response from LLM")
        assignment = build_assignment(extract_json_object(raw), today=today)
        logger.info(
            "assignment_parse_done",
            has_due_date=assignment.due_date is not None,
            priority=assignment.priority.value,
        )
        return assignment
