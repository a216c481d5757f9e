"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、消息校验上限、历史分页大小、CORS 来源等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CAMPUSCHAT_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "CAMPUSCHAT_DB_PATH",
        str(_get_base_dir() / "sqlite" / "campuschat.db"),
    )


def get_cors_origins() -> list[str] | str:
    """获取 Socket.IO 允许的跨域来源，逗号分隔；"*" 表示全部"""
    raw = os.environ.get("CAMPUSCHAT_CORS_ORIGINS", "*").strip()
    if raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# 消息正文最大字符数
MESSAGE_BODY_MAX_LENGTH: int = int(
    os.environ.get("CAMPUSCHAT_MESSAGE_BODY_MAX_LENGTH", "5000")
)

# 单条消息附件数上限
MESSAGE_MAX_ATTACHMENTS: int = 5

# 历史消息分页默认条数与上限
HISTORY_PAGE_SIZE: int = int(os.environ.get("CAMPUSCHAT_HISTORY_PAGE_SIZE", "50"))
HISTORY_PAGE_SIZE_MAX: int = 200
