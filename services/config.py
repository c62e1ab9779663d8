# services/config.py

from pathlib import Path

from pydantic import ValidationError

import services.config_io as config_io
import services.logger as log
import services.util as u
from services.config_schema import AppConfig

l = log.get_logger()

# Environment variables understood by the relay, mapped to dotted config keys.
# A non-blank variable wins over the value from the config file.
ENV_OVERRIDES = {
    "TG_BOT_TOKEN":       "telegram.bot_token",
    "TG_NOTIFY_CHAT_ID":  "telegram.notify_chat_id",
    "TG_API_BASE_URL":    "telegram.api_base_url",
    "USER_TARGET":        "relay.user_target",
    "WORKER_POOL":        "relay.worker_pool",
    "AUTO_REMOVE_MEDIA":  "relay.auto_remove_media",
    "SEND_INFO_UPLOADED": "relay.send_info_uploaded",
    "MINIO_HOST":         "storage.host",
    "MINIO_PORT":         "storage.port",
    "MINIO_ENDPOINT":     "storage.endpoint",
    "MINIO_ACCESS_KEY":   "storage.access_key",
    "MINIO_SECRET_KEY":   "storage.secret_key",
    "MINIO_BUCKET":       "storage.bucket",
    "MINIO_SSL":          "storage.ssl",
    "MINIO_REGION":       "storage.region",
}


class ConfigError(Exception):
    """The settings could not be read or did not validate."""


def _set(config: dict, key: str, value) -> None:
    """Set a dotted *key* such as ``"storage.host"``, creating missing levels."""
    keys = key.split(".")
    d = config
    for k in keys[:-1]:
        if k not in d or not isinstance(d[k], dict):
            d[k] = {}
        d = d[k]
    d[keys[-1]] = value


def apply_env_overrides(raw: dict) -> dict:
    for env, key in ENV_OVERRIDES.items():
        if u.env_is_set(env):
            _set(raw, key, u.get_env(env).strip())
            l.debug(f"Config override from environment: {env} -> {key}")
    return raw


def load_settings(data_dir: Path | None = None) -> AppConfig:
    """
    Resolve the settings record used for the lifetime of the process.

    Reads ``config.json`` / ``.yaml`` / ``.toml`` from *data_dir* (default: the
    data path) when one exists, then layers the environment on top.

    :raises ConfigError: when the file cannot be parsed or validation fails.
    """
    data_dir = Path(data_dir) if data_dir is not None else Path(u.get_data_path())

    raw: dict = {}
    config_path = config_io.find_config(data_dir)
    if config_path is not None:
        l.info(f"Loading config from: {config_path}")
        try:
            raw = config_io.load_config(config_path)
        except Exception as e:
            raise ConfigError(f"Error reading {config_path}: {e}") from e
    else:
        l.info(f"No config file in {data_dir}, using environment only")

    apply_env_overrides(raw)

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e
