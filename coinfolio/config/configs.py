from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coinfolio.adapters.kv_store import KEY_PATTERN

"""
Here, we collect the application configs
"""


class LocalStoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    path: Optional[Path] = Field(
        default=None, description="Directory for the key-value slot; None keeps it in memory"
    )
    key: str = Field(
        default="coins", pattern=KEY_PATTERN, description="Slot holding the coin array"
    )
    poll_interval_s: float = Field(default=2.0, gt=0, description="Change polling interval")


class RemoteStoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URI")
    database: str = Field(default="coinfolio", min_length=1)
    collection: str = Field(default="coins", min_length=1)
    timeout_ms: int = Field(default=5000, gt=0, description="Server selection timeout")


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: Literal["local", "remote"] = Field(
        default="local", description="Persistence strategy, fixed for the process lifetime"
    )
    local: LocalStoreConfig = Field(default_factory=LocalStoreConfig)
    remote: RemoteStoreConfig = Field(default_factory=RemoteStoreConfig)
    cash_reserve: float = Field(default=50_000.0, ge=0, description="Initial cash reserve")
    log_level: str = Field(default="INFO", description="Root logger level")

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level
