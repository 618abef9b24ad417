from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.application.services.content_generation.types import ProviderChoice
from src.interfaces.api.deps import get_db
from src.shared.config import get_settings
from src.shared.db import table_names
from src.shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    # 1. Check Database
    db_status = False
    tables: list[str] = []
    try:
        db.execute(text("SELECT 1"))
        tables = table_names(request.app.state.engine)
        db_status = True
    except SQLAlchemyError:
        log.exception("health_db_check_failed")

    # 2. Check providers (only whether a key is configured, no network call)
    settings = get_settings()
    providers = {
        ProviderChoice.GEMINI.value: bool(settings.gemini_api_key),
        ProviderChoice.OPENAI.value: bool(settings.openai_api_key),
    }

    return {
        "status": "ok" if db_status else "error",
        "version": "0.1.0",
        "components": {
            "db": db_status,
            "providers": providers,
        },
        "info": {
            "db": {
                "type": "SQLite",
                "path": str(settings.sqlite_path),
                "tables": tables,
                "description": "已保存的构成案 / 文章 / Markdown",
            },
            "proxy": {
                "model": settings.openai_model,
                "description": "OpenAI 代理端点（/api/openai, /api/openai-stream）",
            },
        },
    }
