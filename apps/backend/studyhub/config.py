from typing import Annotated

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - srs_* / study_* / grading_*: 復習スケジューラと採点のしきい値
    - schedule_*: 予定の衝突検出と空き枠提案の時間窓
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- LLM（課題テキストの構造化に利用） ---
    llm_provider: str = Field(
        default="openai",
        description="LLM service provider / 利用するLLMプロバイダ",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="LLM model name / 利用するLLMモデル名",
    )
    llm_timeout_ms: int = Field(
        default=30000,
        description="Per-attempt timeout for LLM calls (ms) / LLM呼出しの試行毎タイムアウト(ms)",
    )
    llm_max_retries: int = Field(
        default=1,
        description="Max retries for LLM calls / LLM呼出しの最大リトライ回数",
    )
    llm_max_tokens: int = Field(
        default=400,
        description="Max tokens for LLM completion output / LLM出力の最大トークン数",
    )
    openai_api_key: str | None = Field(default=None, description="OpenAI API Key")

    # --- Firestore 永続化 ---
    firestore_project_id: str | None = Field(
        default=None,
        description="Firestore project id / Firestore のプロジェクトID",
    )
    firestore_emulator_host: str | None = Field(
        default=None,
        description="Firestore emulator host (host:port) / エミュレータの接続先",
    )
    gcp_project_id: str | None = Field(
        default=None,
        description="GCP project id fallback / GCP プロジェクトID（Firestore 未指定時に利用）",
        validation_alias=AliasChoices("gcp_project_id", "google_cloud_project"),
    )

    # --- 復習スケジューラ（SM-2） ---
    srs_initial_ease: float = Field(
        default=2.5,
        description="Ease factor assigned to new cards / 新規カードの初期 ease",
    )
    srs_ease_floor: float = Field(
        default=1.3,
        description="Lower bound of the ease factor / ease の下限",
    )
    study_mastery_rating: int = Field(
        default=4,
        ge=3,
        le=5,
        description="Minimum rating counted as mastered in a session / セッションで mastered とみなす最小評価",
    )
    due_cards_limit: int = Field(
        default=50,
        description="Max due cards returned per request / 1リクエストで返す復習カードの上限",
    )

    # --- 採点 ---
    grading_correct_threshold: float = Field(
        default=0.6,
        description="Similarity needed for a short answer to count as correct / 記述式の正解しきい値",
    )

    # --- スケジュール（分単位、0時起点） ---
    schedule_day_start: int = Field(
        default=6 * 60,
        description="First minute of the schedulable day / 提案対象の開始時刻(分)",
    )
    schedule_day_end: int = Field(
        default=23 * 60,
        description="Last minute of the schedulable day / 提案対象の終了時刻(分)",
    )
    schedule_slot_increment_minutes: int = Field(
        default=15,
        description="Granularity of suggested start times / 提案開始時刻の刻み(分)",
    )
    schedule_default_duration_minutes: int = Field(
        default=60,
        description="Duration assumed when an activity has none / 所要時間未設定時の既定値(分)",
    )
    schedule_suggestion_limit: int = Field(
        default=3,
        description="Alternative slots returned with a conflict report / 衝突時に返す代替枠の件数",
    )

    # --- Operations ---
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )
    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated CORS origins / CORS で許可するオリジンのカンマ区切り一覧"
        ),
        validation_alias=AliasChoices("allowed_cors_origins", "cors_allowed_origins"),
    )

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("allowed_cors_origins", mode="before")
    @classmethod
    def _normalise_allowed_cors_origins(
        cls, raw_origins: object
    ) -> tuple[str, ...] | object:  # pragma: no cover - pydantic handles typing
        """Convert environment input into a deduplicated tuple of origins.

        `.env` 由来の値は空白や重複が混ざりやすいため、FastAPI へ渡す前に
        トリムと重複排除を行う。
        """

        if raw_origins is None:
            candidates: list[str] = []
        elif isinstance(raw_origins, str):
            candidates = raw_origins.split(",")
        else:
            try:
                candidates = list(raw_origins)
            except TypeError:
                return raw_origins

        normalised: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            trimmed = candidate.strip()
            if not trimmed or trimmed in seen:
                continue
            seen.add(trimmed)
            normalised.append(trimmed)

        return tuple(normalised)

    @field_validator("grading_correct_threshold", mode="after")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("GRADING_CORRECT_THRESHOLD must be within [0, 1]")
        return value

    @field_validator("srs_ease_floor", "srs_initial_ease", mode="after")
    @classmethod
    def _validate_ease(cls, value: float) -> float:
        if value <= 1.0:
            raise ValueError("ease values must be greater than 1.0")
        return value

    @model_validator(mode="after")
    def _validate_schedule_window(self) -> "Settings":
        """Reject an empty or inverted schedulable day.

        開始が終了以降だと空き枠計算が常に空になるため、読み込み時点で拒否する。
        """

        if not 0 <= self.schedule_day_start < self.schedule_day_end <= 24 * 60:
            raise ValueError(
                "SCHEDULE_DAY_START must be before SCHEDULE_DAY_END within one day",
            )
        if self.schedule_slot_increment_minutes <= 0:
            raise ValueError("SCHEDULE_SLOT_INCREMENT_MINUTES must be positive")
        if self.srs_initial_ease < self.srs_ease_floor:
            raise ValueError("SRS_INITIAL_EASE must not be below SRS_EASE_FLOOR")
        return self


settings = Settings()
