from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class CheckInRequest(BaseModel):
    today: date | None = Field(default=None, description="チェックイン日（省略時はサーバの今日）")


class StreakResponse(BaseModel):
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_login_date: date | None = None
    is_new_streak: bool = False
    history: list[date] | None = None
