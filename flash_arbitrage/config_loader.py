"""
Configuration loading for the flash arbitrage engine.

Reads a YAML file, expands ``${VAR}`` references from the environment and
validates the result into an ``EngineConfig``. Secrets stay in the
environment; the config only names the variables that hold them.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config_schema import EngineConfig, validate_engine_config
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config {config_path}: {e}")

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
    return config_dict


def expand_env(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """
    Recursively replace ``${VAR}`` and ``${VAR:-default}`` in strings.

    Raises:
        ConfigurationError: If a referenced variable is unset and has no default
    """
    environ = os.environ if environ is None else environ

    if isinstance(value, dict):
        return {k: expand_env(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v, environ) for v in value]
    if not isinstance(value, str):
        return value

    def replace(match):
        name, default = match.group(1), match.group(2)
        if name in environ:
            return environ[name]
        if default is not None:
            return default
        raise ConfigurationError(f"Environment variable {name} is not set")

    return _ENV_PATTERN.sub(replace, value)


def load_engine_config(
    config_path: Union[str, Path], environ: Optional[Mapping[str, str]] = None
) -> EngineConfig:
    """
    Load, expand and validate an engine configuration file.

    Args:
        config_path: Path to the YAML configuration file
        environ: Environment used for ``${VAR}`` expansion (os.environ by default)

    Returns:
        Validated engine configuration

    Raises:
        ConfigurationError: If the file cannot be loaded or fails validation
    """
    config_dict = expand_env(load_yaml_config(config_path), environ)
    try:
        config = validate_engine_config(config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed for {config_path}: {e}",
            {"errors": e.errors(include_url=False)},
        )

    logger.info(
        f"Loaded config {config_path}: chain {config.network.chain_id}, "
        f"{len(config.dexes)} DEXes, {len(config.tokens.universe)} tokens, "
        f"dry_run={config.execution.dry_run}"
    )
    return config


def resolve_private_key(
    config: EngineConfig, environ: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """Return the searcher key named by ``private_key_env``, or None when unset."""
    environ = os.environ if environ is None else environ
    key = environ.get(config.execution.private_key_env)
    if not key:
        logger.warning(
            f"{config.execution.private_key_env} is not set; execution forced to dry-run"
        )
        return None
    return key.strip()


def resolve_secret(env_name: Optional[str], environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    if not env_name:
        return None
    environ = os.environ if environ is None else environ
    return environ.get(env_name) or None
