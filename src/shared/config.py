from __future__ import annotations

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WRITER_", extra="ignore")

    api_host: str = "127.0.0.1"
    api_port: int = 3001

    sqlite_path: Path = Path(".runtime/sqlite/writer.db")

    log_level: str = "INFO"

    # 前端开发服务器地址（逗号分隔）
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # ============== 模型配置 ==============
    # OpenAI（流式生成 / 代理端点）
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-5"

    # Gemini（构成案生成时绑定 Google 搜索）
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-pro"

    request_timeout_seconds: float = 120.0

    # 仅用于 Gemini 构成案请求
    outline_temperature: float = 0.5

    # 代理模式：客户端经由本服务的 /api/openai 访问模型
    proxy_base_url: str = "http://127.0.0.1:3001"

    # 构成案生成期间的状态提示轮换间隔
    status_rotation_interval_seconds: float = 3.5


_settings: Settings | None = None


def _load_dotenv_into_environ(dotenv_path: Path = Path(".env")) -> None:
    """轻量加载 `.env` 到 os.environ（不覆盖已存在的环境变量）。

    说明：
    - pydantic-settings 的 env_file 不会写入 os.environ；
      这里统一写入，便于脚本与子进程读取同一份密钥。
    """

    # 允许测试或部署环境显式禁用
    if os.getenv("WRITER_DISABLE_DOTENV") == "1":
        return

    if not dotenv_path.exists():
        return

    try:
        raw = dotenv_path.read_text(encoding="utf-8")
    except OSError:
        return

    for line in raw.splitlines():
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        if "=" not in s:
            continue

        key, value = s.split("=", 1)
        key = key.strip()
        value = value.strip()

        if not key:
            continue

        # 去掉两侧引号
        if (value.startswith('"') and value.endswith('"')) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]

        os.environ.setdefault(key, value)


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _load_dotenv_into_environ()
        _settings = Settings()
    return _settings


def reset_settings_for_tests() -> None:
    """仅用于测试：清空配置缓存，便于使用 monkeypatch 设置环境变量。"""
    global _settings
    _settings = None
