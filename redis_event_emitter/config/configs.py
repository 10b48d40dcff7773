from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

"""
Bus connection configuration. Passed opaquely to the Redis client at composition
time; the binding core never reads it.
"""


class RedisEventEmitterOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Connection target: url wins over path, path (unix socket) wins over host/port
    host: str = "127.0.0.1"
    port: int = 6379
    path: Optional[str] = None
    url: Optional[str] = None
    db: int = 0

    # Auth
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)

    # Namespace prefix for every channel ("<scope>:<channel>")
    scope: Optional[str] = None

    # Socket behaviour
    ssl: bool = False
    socket_keepalive: bool = True
    socket_connect_timeout: Optional[float] = None
    retry_on_timeout: bool = False
    health_check_interval: float = 0.0

    # Reader loop: how long one get_message() call blocks (seconds)
    poll_timeout_s: float = 1.0

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: int) -> int:
        if not (0 < v < 65536):
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("db")
    @classmethod
    def _check_db(cls, v: int) -> int:
        if v < 0:
            raise ValueError("db must be non-negative")
        return v

    @field_validator("scope")
    @classmethod
    def _check_scope(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v or any(ch.isspace() for ch in v)):
            raise ValueError("scope must be a non-empty string without whitespace")
        return v

    @field_validator("poll_timeout_s")
    @classmethod
    def _check_poll_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_timeout_s must be positive")
        return v

    @model_validator(mode="after")
    def _check_target(self) -> "RedisEventEmitterOptions":
        if self.url is not None and not self.url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("url must use the redis://, rediss:// or unix:// scheme")
        return self

    def redis_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for redis.asyncio.Redis / from_url."""
        kwargs: dict[str, Any] = {
            "db": self.db,
            "username": self.username,
            "password": self.password,
            "socket_keepalive": self.socket_keepalive,
            "socket_connect_timeout": self.socket_connect_timeout,
            "retry_on_timeout": self.retry_on_timeout,
            "health_check_interval": self.health_check_interval,
            "decode_responses": True,
        }
        if self.url is None:
            if self.path is not None:
                kwargs["unix_socket_path"] = self.path
            else:
                kwargs["host"] = self.host
                kwargs["port"] = self.port
                kwargs["ssl"] = self.ssl
        return kwargs
