#!/usr/bin/env python3
"""数据库初始化脚本。

创建数据表；可选导入浏览器 localStorage 导出的 JSON（`{storage_key: [records...]}`）。

使用方法：
    python scripts/init-db.py
    python scripts/init-db.py --import-json saved.json
"""

import argparse
import json
import sys
from pathlib import Path

# 允许从任意工作目录运行脚本：确保项目根目录在 sys.path 中
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.application.services.collection_store import (
    RECORD_MODELS,
    STORAGE_KEYS,
    CollectionStores,
    SqlKeyValueBackend,
)
from src.shared.config import get_settings
from src.shared.db import Base, init_db, make_engine, make_session_factory


def import_saved_collections(engine, json_path: Path) -> None:
    """导入旧数据：按 storage key 整表写入（会校验记录结构）。"""
    data = json.loads(json_path.read_text(encoding="utf-8"))
    stores = CollectionStores(SqlKeyValueBackend(make_session_factory(engine)))

    for kind, key in STORAGE_KEYS.items():
        raw = data.get(key)
        if not raw:
            continue
        # localStorage 中的值可能是 JSON 字符串
        if isinstance(raw, str):
            raw = json.loads(raw)
        records = [RECORD_MODELS[kind].model_validate(item) for item in raw]
        stores.for_kind(kind).set(records)
        print(f"Imported {len(records)} records: {key}")


def main() -> None:
    """初始化数据库并创建所有表。"""
    parser = argparse.ArgumentParser(description="初始化 SQLite 数据库")
    parser.add_argument("--import-json", default="", help="localStorage 导出的 JSON 文件")
    args = parser.parse_args()

    settings = get_settings()
    db_path = Path(settings.sqlite_path)

    engine = make_engine(db_path)
    init_db(engine)

    print(f"DB initialized: {db_path}")
    print("已创建的表:")
    for table in Base.metadata.tables.values():
        print(f"  - {table.name}")

    if args.import_json:
        import_saved_collections(engine, Path(args.import_json))


if __name__ == "__main__":
    main()
