"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出（异常栈展开为字符串字段）

HTTP 日志携带 request_id / room_id，Socket 事件日志携带 event_id / sid / room_id，
均经 contextvars 合并。python-socketio / python-engineio 自身的日志单独控制级别。
"""

import logging
import os

import structlog

SOCKET_LOGGERS = ("socketio", "engineio")


def setup_logging() -> None:
    """初始化 structlog 配置

    根据 CAMPUSCHAT_LOG_FORMAT 环境变量选择渲染模式：
    - "json": 结构化 JSON 输出（生产环境）
    - "dev" (默认): pretty print 可读输出
    """
    log_format = os.environ.get("CAMPUSCHAT_LOG_FORMAT", "dev")
    log_level = os.environ.get("CAMPUSCHAT_LOG_LEVEL", "INFO")
    socket_log_level = os.environ.get("CAMPUSCHAT_SOCKET_LOG_LEVEL", "WARNING")

    # 基础处理器链
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer_chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if log_format == "json":
        renderer_chain += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        renderer_chain.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 配置标准库 logging（socketio / engineio / uvicorn 日志统一格式）
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=renderer_chain,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Socket.IO 协议层日志默认只保留告警
    for name in SOCKET_LOGGERS:
        logging.getLogger(name).setLevel(
            getattr(logging, socket_log_level.upper(), logging.WARNING)
        )
