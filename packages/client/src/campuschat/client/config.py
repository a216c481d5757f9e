"""ClientConfig -- 客户端连接配置加载

从环境变量加载，非法数值记录告警后回退默认值，不阻塞启动。
"""

import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class ClientConfig(BaseModel):
    """客户端配置

    环境变量:
        CAMPUSCHAT_SERVER_URL: 网关地址（默认 http://localhost:8000）
        CAMPUSCHAT_RECONNECT_ATTEMPTS: 自动重连次数上限（默认 5）
        CAMPUSCHAT_RECONNECT_DELAY_S: 首次重连延迟（秒，默认 1）
        CAMPUSCHAT_RECONNECT_DELAY_MAX_S: 重连延迟上限（秒，默认 5）
        CAMPUSCHAT_CONNECT_TIMEOUT_S: 握手超时（秒，默认 10）
    """

    server_url: str = Field(
        default="http://localhost:8000",
        description="网关基础 URL",
    )
    reconnect_attempts: int = Field(
        default=5,
        ge=0,
        description="自动重连次数上限（有界重试）",
    )
    reconnect_delay_s: float = Field(
        default=1.0,
        gt=0,
        description="首次重连延迟，之后指数退避",
    )
    reconnect_delay_max_s: float = Field(
        default=5.0,
        gt=0,
        description="重连延迟上限",
    )
    connect_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="握手超时",
    )


_NUMERIC_ENV: dict[str, tuple[str, type]] = {
    "CAMPUSCHAT_RECONNECT_ATTEMPTS": ("reconnect_attempts", int),
    "CAMPUSCHAT_RECONNECT_DELAY_S": ("reconnect_delay_s", float),
    "CAMPUSCHAT_RECONNECT_DELAY_MAX_S": ("reconnect_delay_max_s", float),
    "CAMPUSCHAT_CONNECT_TIMEOUT_S": ("connect_timeout_s", float),
}


def load_client_config() -> ClientConfig:
    """从环境变量加载客户端配置

    Returns:
        ClientConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CAMPUSCHAT_SERVER_URL"):
        kwargs["server_url"] = val.rstrip("/")

    for env_var, (field_name, cast) in _NUMERIC_ENV.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            parsed = cast(val)
        except ValueError:
            parsed = None
        if parsed is None or parsed < 0 or (cast is float and parsed == 0):
            log.warning(
                "invalid_client_config",
                env_var=env_var,
                value=val,
                fallback=ClientConfig.model_fields[field_name].default,
            )
            continue
        kwargs[field_name] = parsed

    return ClientConfig(**kwargs)
