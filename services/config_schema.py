from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

import services.logger as log

l = log.get_logger()

DEFAULT_WORKER_POOL = 5


# ---------------------------------------------------------------------------
# Reusable coercions
# ---------------------------------------------------------------------------

def _coerce_bool(v: object) -> object:
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes")
    return v


def _coerce_str(v: object) -> object:
    # Ports and chat ids are often written as bare numbers
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


CoercedBool = Annotated[bool, BeforeValidator(_coerce_bool)]
CoercedStr = Annotated[str, BeforeValidator(_coerce_str)]


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class TelegramConfig(_Section):
    bot_token:      str        = ""
    notify_chat_id: CoercedStr = ""
    # Self-hosted Bot API server, lifts the 20 MB download cap
    api_base_url:   str        = ""
    local_mode:     CoercedBool = False


class StorageConfig(_Section):
    host:            str         = ""
    port:            CoercedStr  = ""
    endpoint:        str         = ""
    access_key:      str         = ""
    secret_key:      str         = ""
    bucket:          str         = ""
    ssl:             CoercedBool = False
    region:          str         = ""
    connect_timeout: float       = 60.0
    read_timeout:    float       = 300.0


class RelayConfig(_Section):
    user_target:        list[str]   = Field(default_factory=list)
    worker_pool:        int         = DEFAULT_WORKER_POOL
    auto_remove_media:  CoercedBool = False
    send_info_uploaded: CoercedBool = False
    download_timeout:   float       = 600.0
    media_dir:          str         = ""

    @field_validator("user_target", mode="before")
    @classmethod
    def _split_targets(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [str(t).strip() for t in v if str(t).strip()]
        return v

    @field_validator("worker_pool", mode="before")
    @classmethod
    def _pool_size(cls, v: object) -> int:
        try:
            size = int(v)
        except (TypeError, ValueError):
            l.warning(f"Invalid worker_pool value {v!r}, using {DEFAULT_WORKER_POOL}")
            return DEFAULT_WORKER_POOL
        return size if size > 0 else DEFAULT_WORKER_POOL


# ---------------------------------------------------------------------------
# Top-level application config
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    storage:  StorageConfig  = Field(default_factory=StorageConfig)
    relay:    RelayConfig    = Field(default_factory=RelayConfig)

    def sensitive_values(self) -> frozenset[str]:
        """Credentials that must never reach logs or outgoing messages."""
        return frozenset(
            v for v in (self.telegram.bot_token, self.storage.secret_key, self.storage.access_key) if v
        )
