from __future__ import annotations

from datetime import date, datetime
from typing import Any


def normalize_non_negative_int(value: Any) -> int:
    """与えられた値を非負整数に正規化する。

    復習回数や間隔日数が壊れた値で保存されるとスケジューラの計算が破綻するため、
    Firestore へ書き込む前と読み出した直後にゼロ以上へ矯正しておく。"""

    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return 0
    return ivalue if ivalue >= 0 else 0


def parse_iso_date(value: Any) -> date | None:
    """Firestore に保存した ``YYYY-MM-DD``（または datetime）を date に戻す。"""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def format_iso_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None
