"""Daily login streak bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_login_date: date | None = None


@dataclass(frozen=True)
class StreakUpdate:
    state: StreakState
    is_new_streak: bool
    changed: bool


def check_in(state: StreakState | None, today: date) -> StreakUpdate:
    """Apply a check-in for ``today``.

    - 初回: 1 から開始
    - 同日の再チェックイン: 変更なし
    - ちょうど翌日: +1
    - それ以上空いた（または日付が巻き戻った）場合: 1 にリセット
    """

    if state is None or state.last_login_date is None:
        longest = max(1, state.longest_streak if state else 0)
        return StreakUpdate(
            state=StreakState(current_streak=1, longest_streak=longest, last_login_date=today),
            is_new_streak=True,
            changed=True,
        )

    if state.last_login_date == today:
        return StreakUpdate(state=state, is_new_streak=False, changed=False)

    gap = (today - state.last_login_date).days
    if gap == 1:
        current = max(0, state.current_streak) + 1
        is_new = True
    else:
        current = 1
        is_new = False

    return StreakUpdate(
        state=StreakState(
            current_streak=current,
            longest_streak=max(current, state.longest_streak),
            last_login_date=today,
        ),
        is_new_streak=is_new,
        changed=True,
    )
