"""
Configuration for vendorlock.

Defaults, optionally overlaid by one file under ~/.vendorlock/ (or the
file named by $VENDORLOCK_CONFIG), then by VENDORLOCK_SECTION_KEY
environment variables.
"""

import json
import logging
import os
import sys
import tomllib
from pathlib import Path

import yaml

from .exit_codes import ConfigError

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger("vendorlock")

ENV_PREFIX = "VENDORLOCK_"
CONFIG_ENV = "VENDORLOCK_CONFIG"
CONFIG_DIR_NAME = ".vendorlock"
CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']


def _load_toml(path):
    with open(path, 'rb') as f:
        return tomllib.load(f)


def _load_yaml(path):
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def _load_json(path):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


LOADERS = {
    '.toml': _load_toml,
    '.yaml': _load_yaml,
    '.yml': _load_yaml,
    '.json': _load_json,
}


def get_config_path():
    """Where configuration is read from (and `config init` writes to).

    $VENDORLOCK_CONFIG wins when it names an existing file; otherwise the
    first of ~/.vendorlock/config.{json,toml,yaml,yml} that exists, else
    ~/.vendorlock/config.json.
    """
    explicit = os.environ.get(CONFIG_ENV)
    if explicit:
        candidate = Path(explicit).expanduser()
        if candidate.exists():
            return candidate

    config_dir = Path.home() / CONFIG_DIR_NAME
    existing = [config_dir / name for name in CONFIG_FILENAMES if (config_dir / name).exists()]
    return existing[0] if existing else config_dir / CONFIG_FILENAMES[0]


def get_default_config():
    return {
        "resolver": {
            "concurrency": 4,
            "max_retries": 3,
            "base_delay": 1.0,
            "max_delay": 30.0,
            "timeout_seconds": 30,
        },
        "vendor": {
            "directory": "vendor",
        },
        "output": {
            "filename": "cargo-sources.json",
            "format": "manifest",
        },
        # index URL -> download base, for registries other than crates.io
        "registries": {},
        "github": {
            "token": "",
        },
        "logging": {
            "level": "INFO",
        },
    }


def load_config():
    """
    Build the effective configuration.

    Raises:
        ConfigError: If the config file cannot be read or is not a mapping
    """
    config = get_default_config()
    path = get_config_path()

    if path.exists():
        loader = LOADERS.get(path.suffix.lower(), _load_json)
        try:
            file_config = loader(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config from {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        logger.debug(f"Loaded config from {path}")
        config = merge_configs(config, file_config)

    return apply_env_overrides(config)


def merge_configs(base_config, override_config):
    """Recursively overlay override_config onto a copy of base_config."""
    merged = dict(base_config)
    for key, value in override_config.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(value):
    lowered = value.lower()
    if lowered in ('true', 'yes', 'on'):
        return True
    if lowered in ('false', 'no', 'off'):
        return False
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return value


def _leaf_paths(config, prefix=()):
    """Yield the key path of every non-mapping value in config."""
    for key, value in config.items():
        path = prefix + (key,)
        if isinstance(value, dict) and value:
            yield from _leaf_paths(value, path)
        else:
            yield path


def apply_env_overrides(config):
    """
    Override existing settings from the environment.

    A setting at section.key is overridden by VENDORLOCK_SECTION_KEY, e.g.
    VENDORLOCK_RESOLVER_MAX_RETRIES=5. Variables that name no existing
    setting are ignored.
    """
    for path in list(_leaf_paths(config)):
        env_name = ENV_PREFIX + '_'.join(str(part) for part in path).upper()
        if env_name == CONFIG_ENV or env_name not in os.environ:
            continue

        target = config
        for part in path[:-1]:
            target = target[part]
        target[path[-1]] = _coerce_env_value(os.environ[env_name])
        logger.debug(f"{env_name} overrides {'.'.join(map(str, path))}")

    return config


def get_github_token(config):
    """Token for GitHub API queries: config first, then the environment."""
    return (
        config.get('github', {}).get('token')
        or os.environ.get('VENDORLOCK_GITHUB_TOKEN')
        or os.environ.get('GITHUB_TOKEN')
        or None
    )
