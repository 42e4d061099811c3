"""LLM プロバイダ（OpenAI Responses API）とタイムアウト/リトライ方針。"""

from __future__ import annotations

import contextvars
import inspect
import time
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any

from openai import OpenAI

from ..config import settings
from ..logging import logger
from . import _get_llm_executor, _get_llm_instance, _reset_llm_executor, _set_llm_instance


class _LLMBase:
    """LLM クライアントが実装すべき最小インターフェース。"""

    def complete(self, prompt: str) -> str:  # pragma: no cover - interface definition
        raise NotImplementedError


class _LocalEchoLLM(_LLMBase):
    """外部依存が利用できない環境でのフォールバック LLM（常に空文字を返す）。"""

    def complete(self, prompt: str) -> str:
        logger.info(
            "llm_complete_call",
            provider="local",
            model="echo",
            prompt_chars=len(prompt),
        )
        return ""


class _OpenAILLM(_LLMBase):  # pragma: no cover - オンライン利用が前提
    """OpenAI Responses API を利用する LLM ラッパー。"""

    def __init__(self, *, api_key: str, model: str, temperature: float = 0.2) -> None:
        self._client = OpenAI(api_key=api_key)
        self._model = model
        self._temperature = float(max(0.0, min(1.0, temperature)))

    def _extract_text(self, resp: Any) -> str:
        """Responses API のレスポンスから本文を抜き出す。"""

        txt = getattr(resp, "output_text", None)
        if isinstance(txt, str) and txt.strip():
            return txt.strip()
        data = resp if isinstance(resp, dict) else resp.model_dump()
        for item in data.get("output") or []:
            for content in (item or {}).get("content") or []:
                text = content.get("text")
                if isinstance(text, str) and text.strip():
                    return text.strip()
        return ""

    def _create(self, prompt: str, *, include_temperature: bool) -> Any:
        try:
            param_names = set(inspect.signature(self._client.responses.create).parameters)
        except (TypeError, ValueError):
            param_names = set()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "input": prompt,
            "max_output_tokens": int(settings.llm_max_tokens),
        }
        if "timeout" in param_names:
            kwargs["timeout"] = settings.llm_timeout_ms / 1000.0
        if include_temperature:
            kwargs["temperature"] = self._temperature
        return self._client.responses.create(**kwargs)

    def complete(self, prompt: str) -> str:
        logger.info(
            "llm_complete_call",
            provider="openai",
            model=self._model,
            prompt_chars=len(prompt),
        )
        try:
            resp = self._create(prompt, include_temperature=True)
        except Exception as exc:
            low = (str(exc) or "").lower()
            if "temperature" not in low or "unsupported" not in low:
                raise
            # 推論系モデルは temperature を受け付けない
            logger.info(
                "llm_complete_retry_without_temperature",
                provider="openai",
                model=self._model,
                reason=str(exc)[:200],
            )
            resp = self._create(prompt, include_temperature=False)
        content = self._extract_text(resp)
        logger.info(
            "llm_complete_result",
            provider="openai",
            model=self._model,
            content_chars=len(content),
        )
        return content


def _reason_code(exc: Exception | None) -> tuple[str, str]:
    """例外内容から (メッセージ, 理由コード) を推定する。"""

    text = (str(exc) or "").lower() if exc else ""
    etype = type(exc).__name__ if exc else "None"
    if isinstance(exc, FuturesTimeout) or "timeout" in text:
        return "LLM timeout", "TIMEOUT"
    if "rate limit" in text or "429" in text or "ratelimit" in etype.lower():
        return "LLM failure", "RATE_LIMIT"
    if "invalid api key" in text or "unauthorized" in text or "401" in text:
        return "LLM failure", "AUTH"
    return "LLM failure", "UNKNOWN"


def _llm_with_policy(llm: _LLMBase) -> _LLMBase:
    """タイムアウトとリトライを付与した LLM ラッパーを返す。"""

    class _Wrapped(_LLMBase):
        def complete(self, prompt: str) -> str:
            last_exc: Exception | None = None
            attempts = max(1, settings.llm_max_retries)
            for attempt in range(1, attempts + 1):
                future = None
                try:
                    ctx = contextvars.copy_context()
                    future = _get_llm_executor().submit(ctx.run, llm.complete, prompt)
                    return future.result(timeout=settings.llm_timeout_ms / 1000.0)
                except Exception as exc:
                    last_exc = exc
                    logger.info(
                        "llm_complete_error",
                        attempt=attempt,
                        retries=attempts,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    if future is not None:
                        future.cancel()
                    if attempt >= attempts:
                        break
                    time.sleep(0.1 * attempt)
            logger.info(
                "llm_complete_failed_all_retries",
                error=str(last_exc) if last_exc else None,
                error_type=(type(last_exc).__name__ if last_exc else None),
            )
            if settings.strict_mode:
                base_msg, reason_code = _reason_code(last_exc)
                etype = type(last_exc).__name__ if last_exc else "None"
                detail = (str(last_exc) or "")[:256] if last_exc else ""
                raise RuntimeError(
                    f"{base_msg} (reason_code={reason_code}, error_type={etype}, detail={detail})"
                )
            return ""

    return _Wrapped()


def get_llm_provider() -> Any:
    """設定値に応じた LLM クライアントを返す（初回生成後はシングルトン）。"""

    instance = _get_llm_instance()
    if instance is not None:
        return instance

    provider = (settings.llm_provider or "").lower()
    if provider == "openai" and settings.openai_api_key:
        logger.info("llm_provider_select", provider="openai", model=settings.llm_model)
        wrapped = _llm_with_policy(
            _OpenAILLM(api_key=settings.openai_api_key, model=settings.llm_model)
        )
    elif settings.strict_mode:
        if provider == "openai":
            raise RuntimeError(
                "OPENAI_API_KEY is required for LLM_PROVIDER=openai (strict mode)"
            )
        raise RuntimeError(f"Unknown LLM provider: {provider or '<empty>'}")
    else:
        logger.info(
            "llm_provider_select",
            provider="local",
            requested=provider or None,
            reason="missing_api_key" if provider == "openai" else "non_openai_provider",
        )
        wrapped = _llm_with_policy(_LocalEchoLLM())
    _set_llm_instance(wrapped)
    return wrapped


def set_llm_provider(llm: Any | None) -> None:
    """LLM シングルトンを差し替える（テストやスクリプト用）。"""

    _set_llm_instance(llm)


def shutdown_providers() -> None:
    """共有スレッドプールと LLM シングルトンを解放する。"""

    previous = _reset_llm_executor()
    previous.shutdown(wait=False, cancel_futures=True)
    _set_llm_instance(None)
