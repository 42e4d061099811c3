from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from google.cloud import firestore

from ..logging import logger
from ..quiz import QuizAttempt
from ..scheduler import (
    DEFAULT_EASE,
    CardStatus,
    ReviewDecision,
    SchedulingState,
    order_due_cards,
)
from ..streaks import StreakState
from ..study_session import StudyCard
from .common import format_iso_date, normalize_non_negative_int, parse_iso_date

_DELETE_BATCH_SIZE = 200


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _card_from_snapshot(snapshot: Any) -> StudyCard:
    data = snapshot.to_dict() or {}
    try:
        ease = float(data.get("ease_factor", DEFAULT_EASE))
    except (TypeError, ValueError):
        ease = DEFAULT_EASE
    return StudyCard(
        id=snapshot.id,
        deck_id=str(data.get("deck_id") or ""),
        front=str(data.get("front") or ""),
        back=str(data.get("back") or ""),
        hint=data.get("hint") or None,
        difficulty=str(data.get("difficulty") or "medium"),
        scheduling=SchedulingState(
            repetition_count=normalize_non_negative_int(data.get("repetition_count")),
            ease_factor=ease,
            interval_days=normalize_non_negative_int(data.get("interval_days")),
        ),
        next_review_date=parse_iso_date(data.get("next_review_date")),
        last_reviewed=parse_iso_date(data.get("last_reviewed")),
    )


def _attempt_payload(quiz_id: str, attempt: QuizAttempt) -> dict[str, Any]:
    return {
        "quiz_id": quiz_id,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "percentage": attempt.percentage,
        "time_spent_seconds": attempt.time_spent_seconds,
        "answers": [
            {
                "question_id": record.question_id,
                "prompt": record.prompt,
                "question_type": record.question_type.value,
                "user_answer": record.user_answer,
                "correct_answer": record.correct_answer,
                "is_correct": record.is_correct,
                "similarity": record.similarity,
                "explanation": record.explanation,
            }
            for record in attempt.answers
        ],
        "completed_at": _now_iso(),
    }


class FirestoreBaseStore:
    """Firestore クライアント共通のヘルパー。"""

    def __init__(self, client: firestore.Client):
        self._client = client


class FirestoreDeckStore(FirestoreBaseStore):
    """デッキ・カード・復習ログを管理する。

    - decks/{deck_id}: 名前と説明
    - cards/{card_id}: 表裏・ヒントと SM-2 の状態（next_review_date は ISO 日付文字列）
    - card_reviews/{review_id}: 評価ごとの追記ログ
    """

    def __init__(self, client: firestore.Client, *, initial_ease: float = DEFAULT_EASE):
        super().__init__(client)
        self._initial_ease = initial_ease
        self._decks = client.collection("decks")
        self._cards = client.collection("cards")
        self._reviews = client.collection("card_reviews")

    def add_deck(
        self,
        name: str,
        *,
        description: str = "",
        deck_id: str | None = None,
    ) -> str:
        deck_id = deck_id or uuid.uuid4().hex
        now = _now_iso()
        self._decks.document(deck_id).set(
            {
                "name": name,
                "description": description,
                "created_at": now,
                "updated_at": now,
            }
        )
        return deck_id

    def get_deck(self, deck_id: str) -> dict[str, Any] | None:
        snapshot = self._decks.document(deck_id).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        return {"id": snapshot.id, **data}

    def delete_deck(self, deck_id: str) -> bool:
        """デッキと配下のカードを削除する。存在しなければ False。"""

        doc_ref = self._decks.document(deck_id)
        if not doc_ref.get().exists:
            return False
        while True:
            snapshots = list(
                self._cards.where("deck_id", "==", deck_id).limit(_DELETE_BATCH_SIZE).stream()
            )
            if not snapshots:
                break
            batch = self._client.batch()
            for snapshot in snapshots:
                batch.delete(snapshot.reference)
            batch.commit()
            if len(snapshots) < _DELETE_BATCH_SIZE:
                break
        doc_ref.delete()
        logger.info("deck_deleted", deck_id=deck_id)
        return True

    def add_card(
        self,
        deck_id: str,
        *,
        front: str,
        back: str,
        hint: str | None = None,
        difficulty: str = "medium",
        today: date | None = None,
        card_id: str | None = None,
    ) -> StudyCard:
        if not self._decks.document(deck_id).get().exists:
            raise KeyError(deck_id)
        card_id = card_id or uuid.uuid4().hex
        now = _now_iso()
        # 新規カードは作成日に復習対象となる
        self._cards.document(card_id).set(
            {
                "deck_id": deck_id,
                "front": front,
                "back": back,
                "hint": hint,
                "difficulty": difficulty,
                "repetition_count": 0,
                "ease_factor": self._initial_ease,
                "interval_days": 0,
                "status": CardStatus.new.value,
                "next_review_date": format_iso_date(today or date.today()),
                "last_reviewed": None,
                "created_at": now,
                "updated_at": now,
            }
        )
        card = self.get_card(card_id)
        if card is None:  # pragma: no cover - 書き込み直後の読み出し失敗
            raise RuntimeError("failed to persist card")
        return card

    def get_card(self, card_id: str) -> StudyCard | None:
        snapshot = self._cards.document(card_id).get()
        if not snapshot.exists:
            return None
        return _card_from_snapshot(snapshot)

    def list_cards(self, deck_id: str | None) -> list[StudyCard]:
        """deck_id が None なら全カードを返す。"""

        query = self._cards if deck_id is None else self._cards.where("deck_id", "==", deck_id)
        query = query.order_by("created_at")
        return [_card_from_snapshot(snapshot) for snapshot in query.stream()]

    def save_card_review(self, card_id: str, decision: ReviewDecision) -> None:
        """評価結果をカードへ反映し、復習ログへ追記する。

        未知のカードは KeyError。Firestore 側の失敗はそのまま送出する。
        """

        doc_ref = self._cards.document(card_id)
        snapshot = doc_ref.get()
        if not snapshot.exists:
            raise KeyError(card_id)
        data = snapshot.to_dict() or {}
        reviewed_at = _now_iso()
        doc_ref.set(
            {
                "repetition_count": normalize_non_negative_int(decision.repetition_count),
                "ease_factor": float(decision.ease_factor),
                "interval_days": normalize_non_negative_int(decision.interval_days),
                "next_review_date": format_iso_date(decision.next_review_date),
                "status": decision.status.value,
                "last_reviewed": format_iso_date(decision.reviewed_on),
                "updated_at": reviewed_at,
            },
            merge=True,
        )
        self._reviews.document(uuid.uuid4().hex).set(
            {
                "card_id": card_id,
                "deck_id": data.get("deck_id"),
                "rating": decision.rating,
                "repetition_count": decision.repetition_count,
                "ease_factor": float(decision.ease_factor),
                "interval_days": decision.interval_days,
                "reviewed_on": format_iso_date(decision.reviewed_on),
                "next_review_date": format_iso_date(decision.next_review_date),
                "reviewed_at": reviewed_at,
            }
        )

    def list_card_reviews(self, card_id: str) -> list[dict[str, Any]]:
        query = self._reviews.where("card_id", "==", card_id).order_by("reviewed_at")
        return [snapshot.to_dict() or {} for snapshot in query.stream()]

    def load_due_cards(
        self,
        deck_id: str | None,
        as_of: date,
        *,
        limit: int | None = None,
    ) -> list[StudyCard]:
        """as_of 以前が期限のカードに、復習日が未設定（null）のカードを加えて返す。

        is_due と同じく日付のないカードは常に期限切れとして扱う。
        """

        dated = self._cards.where("next_review_date", "<=", as_of.isoformat())
        undated = self._cards.where("next_review_date", "==", None)
        if deck_id:
            dated = dated.where("deck_id", "==", deck_id)
            undated = undated.where("deck_id", "==", deck_id)
        snapshots = {s.id: s for s in dated.stream()}
        for snapshot in undated.stream():
            snapshots.setdefault(snapshot.id, snapshot)
        cards = order_due_cards(_card_from_snapshot(s) for s in snapshots.values())
        if limit is not None:
            cards = cards[: max(0, int(limit))]
        return cards


class FirestoreQuizStore(FirestoreBaseStore):
    """quiz_attempts/{attempt_id} に受験結果を保存する。"""

    def __init__(self, client: firestore.Client):
        super().__init__(client)
        self._attempts = client.collection("quiz_attempts")

    def save_quiz_attempt(self, quiz_id: str, attempt: QuizAttempt) -> str:
        attempt_id = uuid.uuid4().hex
        self._attempts.document(attempt_id).set(_attempt_payload(quiz_id, attempt))
        return attempt_id

    def list_quiz_attempts(self, quiz_id: str) -> list[dict[str, Any]]:
        query = self._attempts.where("quiz_id", "==", quiz_id).order_by(
            "completed_at", direction=firestore.Query.DESCENDING
        )
        return [{"id": snapshot.id, **(snapshot.to_dict() or {})} for snapshot in query.stream()]


class FirestoreStreakStore(FirestoreBaseStore):
    """streaks/{user_id} に現在値、streak_history/{user_id}_{date} にログイン日を持つ。"""

    def __init__(self, client: firestore.Client):
        super().__init__(client)
        self._streaks = client.collection("streaks")
        self._history = client.collection("streak_history")

    def get_streak(self, user_id: str) -> StreakState | None:
        snapshot = self._streaks.document(user_id).get()
        if not snapshot.exists:
            return None
        data: Mapping[str, Any] = snapshot.to_dict() or {}
        return StreakState(
            current_streak=normalize_non_negative_int(data.get("current_streak")),
            longest_streak=normalize_non_negative_int(data.get("longest_streak")),
            last_login_date=parse_iso_date(data.get("last_login_date")),
        )

    def save_streak(self, user_id: str, state: StreakState) -> None:
        self._streaks.document(user_id).set(
            {
                "current_streak": normalize_non_negative_int(state.current_streak),
                "longest_streak": normalize_non_negative_int(state.longest_streak),
                "last_login_date": format_iso_date(state.last_login_date),
                "updated_at": _now_iso(),
            },
            merge=True,
        )

    def log_login(self, user_id: str, login_date: date) -> None:
        # 同日の記録は同じドキュメント ID に上書きされる
        self._history.document(f"{user_id}_{login_date.isoformat()}").set(
            {"user_id": user_id, "login_date": login_date.isoformat()}
        )

    def get_streak_history(self, user_id: str, since: date | None = None) -> list[date]:
        query = self._history.where("user_id", "==", user_id)
        if since is not None:
            query = query.where("login_date", ">=", since.isoformat())
        days = [
            parse_iso_date((snapshot.to_dict() or {}).get("login_date"))
            for snapshot in query.order_by("login_date").stream()
        ]
        return [day for day in days if day is not None]


class AppFirestoreStore:
    """アプリ全体で利用する Firestore ストアの集約窓口。"""

    def __init__(
        self,
        *,
        client: firestore.Client | None = None,
        initial_ease: float = DEFAULT_EASE,
    ) -> None:
        self._client = client or firestore.Client()
        self.decks = FirestoreDeckStore(self._client, initial_ease=initial_ease)
        self.quizzes = FirestoreQuizStore(self._client)
        self.streaks = FirestoreStreakStore(self._client)

    # --- decks / cards ---
    def add_deck(self, name: str, *, description: str = "", deck_id: str | None = None) -> str:
        return self.decks.add_deck(name, description=description, deck_id=deck_id)

    def get_deck(self, deck_id: str) -> dict[str, Any] | None:
        return self.decks.get_deck(deck_id)

    def delete_deck(self, deck_id: str) -> bool:
        return self.decks.delete_deck(deck_id)

    def add_card(self, deck_id: str, **kwargs: Any) -> StudyCard:
        return self.decks.add_card(deck_id, **kwargs)

    def get_card(self, card_id: str) -> StudyCard | None:
        return self.decks.get_card(card_id)

    def list_cards(self, deck_id: str | None) -> list[StudyCard]:
        return self.decks.list_cards(deck_id)

    def save_card_review(self, card_id: str, decision: ReviewDecision) -> None:
        self.decks.save_card_review(card_id, decision)

    def list_card_reviews(self, card_id: str) -> list[dict[str, Any]]:
        return self.decks.list_card_reviews(card_id)

    def load_due_cards(
        self, deck_id: str | None, as_of: date, *, limit: int | None = None
    ) -> list[StudyCard]:
        return self.decks.load_due_cards(deck_id, as_of, limit=limit)

    # --- quizzes ---
    def save_quiz_attempt(self, quiz_id: str, attempt: QuizAttempt) -> str:
        return self.quizzes.save_quiz_attempt(quiz_id, attempt)

    def list_quiz_attempts(self, quiz_id: str) -> list[dict[str, Any]]:
        return self.quizzes.list_quiz_attempts(quiz_id)

    # --- streaks ---
    def get_streak(self, user_id: str) -> StreakState | None:
        return self.streaks.get_streak(user_id)

    def save_streak(self, user_id: str, state: StreakState) -> None:
        self.streaks.save_streak(user_id, state)

    def log_login(self, user_id: str, login_date: date) -> None:
        self.streaks.log_login(user_id, login_date)

    def get_streak_history(self, user_id: str, since: date | None = None) -> list[date]:
        return self.streaks.get_streak_history(user_id, since)
