"""LLM プロバイダの共有ステートと公開APIを管理するパッケージ。"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

# LLM クライアントのシングルトン。テストでは set_llm_provider で差し替える。
_LLM_INSTANCE: Any | None = None
# LLM 呼び出しをタイムアウト制御付きで実行するためのスレッドプール。
_llm_executor: ThreadPoolExecutor = ThreadPoolExecutor(max_workers=4)


def _get_llm_instance() -> Any | None:
    return _LLM_INSTANCE


def _set_llm_instance(instance: Any | None) -> None:
    """LLM シングルトンを更新する。None を渡すと次回呼び出しで再初期化される。"""

    global _LLM_INSTANCE
    _LLM_INSTANCE = instance


def _get_llm_executor() -> ThreadPoolExecutor:
    return _llm_executor


def _reset_llm_executor() -> ThreadPoolExecutor:
    """停止済みのプールを破棄し、新しいプールを用意する。"""

    global _llm_executor
    previous = _llm_executor
    _llm_executor = ThreadPoolExecutor(max_workers=4)
    return previous


from .llm import get_llm_provider, set_llm_provider, shutdown_providers

__all__ = [
    "get_llm_provider",
    "set_llm_provider",
    "shutdown_providers",
]
