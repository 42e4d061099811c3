from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from ..assignment_parser import Priority


class AssignmentParseRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000, description="自由記述の課題説明")
    today: date | None = Field(default=None, description="相対日付の基準日（省略時はサーバの今日）")


class AssignmentParseResponse(BaseModel):
    title: str
    subject: str = ""
    due_date: date | None = None
    priority: Priority
    time_estimate: str
    time_estimate_minutes: int | None = None
