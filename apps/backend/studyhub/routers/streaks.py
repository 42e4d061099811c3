from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query

from ..deps import get_app_store
from ..logging import logger
from ..models.streak import CheckInRequest, StreakResponse
from ..store import AppFirestoreStore
from ..streaks import check_in

router = APIRouter(tags=["streaks"])


@router.post("/{user_id}/check-in", response_model=StreakResponse)
def check_in_user(
    user_id: str,
    req: CheckInRequest | None = None,
    store: AppFirestoreStore = Depends(get_app_store),
) -> StreakResponse:
    """ログイン日を記録し、連続日数を更新する（同日の再呼び出しは変化なし）。"""
    today = (req.today if req else None) or date.today()
    update = check_in(store.get_streak(user_id), today)
    if update.changed:
        store.save_streak(user_id, update.state)
        store.log_login(user_id, today)
        logger.info(
            "streak_updated",
            user_id=user_id,
            current=update.state.current_streak,
            longest=update.state.longest_streak,
            is_new_streak=update.is_new_streak,
        )
    return StreakResponse(
        user_id=user_id,
        current_streak=update.state.current_streak,
        longest_streak=update.state.longest_streak,
        last_login_date=update.state.last_login_date,
        is_new_streak=update.is_new_streak,
    )


@router.get("/{user_id}", response_model=StreakResponse)
def get_user_streak(
    user_id: str,
    days: int = Query(default=30, ge=1, le=366, description="履歴を返す日数"),
    store: AppFirestoreStore = Depends(get_app_store),
) -> StreakResponse:
    state = store.get_streak(user_id)
    history = store.get_streak_history(user_id, date.today() - timedelta(days=days - 1))
    if state is None:
        return StreakResponse(user_id=user_id, history=history)
    return StreakResponse(
        user_id=user_id,
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        last_login_date=state.last_login_date,
        history=history,
    )
