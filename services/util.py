# services/util.py

import os


def get_data_path():
    path = get_env('BRIDGE_DATA_PATH')
    return path.strip() if path else 'data'


def get_env(env: str):
    return os.environ.get(env)


def env_is_set(env: str) -> bool:
    """True when *env* is present and not blank."""
    value = get_env(env)
    return value is not None and value.strip() != ""
