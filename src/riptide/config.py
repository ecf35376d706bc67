from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "[%(levelname)s] %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_file_encoding="utf-8", extra="ignore")

    # Server
    host: str = Field(default="localhost:8000", alias="RIPTIDE_HOST")
    env: str = Field(default="dev", alias="RIPTIDE_ENV")  # dev|prod

    # Client generation ("" skips writing)
    ts_output: str = Field(default="", alias="RIPTIDE_TS_OUTPUT")

    # Logging
    log_level: str = Field(default="INFO", alias="RIPTIDE_LOG_LEVEL")
    quiet: bool = Field(default=True, alias="RIPTIDE_QUIET")

    @property
    def dev_reload(self) -> bool:
        return self.env == "dev"


def split_host(host: str, default_port: int = 80) -> tuple[str, int]:
    """'localhost:8000' -> ('localhost', 8000); ':8000' binds every interface."""
    host_name, separator, port = host.rpartition(":")
    if not separator:
        return host, default_port
    return host_name or "0.0.0.0", int(port)


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
