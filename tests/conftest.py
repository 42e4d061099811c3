"""Pytest configuration shared by the backend test suite."""

import os
import sys
from pathlib import Path

_BACKEND_ROOT = Path(__file__).resolve().parents[1] / "apps" / "backend"
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# studyhub.config はインポート時に Settings() を生成するため、テスト向けの値を
# 先に環境変数へ入れておく。LLM は常にローカルのフォールバックを使う。
os.environ.setdefault("STRICT_MODE", "false")
os.environ.setdefault("LLM_PROVIDER", "local")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("SENTRY_DSN", None)
