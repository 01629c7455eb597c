"""Loading scheduler configurations from YAML and keeping the active ones per policy group."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from typing import Callable, Optional, Union

import yaml

from schedcore.config import ConfigError, SchedulerConfig
from schedcore.config_validator import validate

logger = logging.getLogger(__name__)

SCHEDULER_CONFIG_PATH = "scheduler-config-path"
DEFAULT_SCHEDULER_CONFIG_PATH = "/etc/schedcore"

# Process-wide settings, such as an explicit configuration directory.
CONFIG_MAP: dict[str, str] = {}

SchedulerConfigLoader = Callable[[str], SchedulerConfig]


class SchedulerConfigContext:
    """Thread-safe store of the active configuration for each policy group."""

    def __init__(self) -> None:
        self._configs: dict[str, SchedulerConfig] = {}
        self._lock = threading.Lock()

    def set(self, policy_group: str, config: SchedulerConfig) -> None:
        """Make the configuration the active one for the policy group."""
        with self._lock:
            self._configs[policy_group] = config

    def get(self, policy_group: str) -> Optional[SchedulerConfig]:
        """Return the active configuration of the policy group, or None."""
        with self._lock:
            return self._configs.get(policy_group)


CONFIG_CONTEXT = SchedulerConfigContext()


def load_scheduler_config_from_bytes(content: Union[bytes, str]) -> SchedulerConfig:
    """Parse and validate a YAML configuration; the checksum is taken over the content."""
    raw = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.error("failed to parse queue configuration: %s", exc)
        raise ConfigError(f"failed to parse queue configuration: {exc}") from exc
    try:
        config = SchedulerConfig.from_dict(data)
        validate(config)
    except ConfigError as exc:
        logger.error("queue configuration validation failed: %s", exc)
        raise
    config.checksum = hashlib.sha256(raw).digest()
    return config


def resolve_configuration_file(policy_group: str) -> str:
    """Return the path of the policy group's configuration file.

    An explicitly configured directory wins; otherwise the default directory
    is used if the file exists there, else the current directory.
    """
    file_name = f"{policy_group}.yaml"
    config_dir = CONFIG_MAP.get(SCHEDULER_CONFIG_PATH)
    if config_dir is not None:
        return os.path.join(config_dir, file_name)
    default_path = os.path.join(DEFAULT_SCHEDULER_CONFIG_PATH, file_name)
    if os.path.exists(default_path):
        return default_path
    return file_name


def load_scheduler_config_from_file(policy_group: str) -> SchedulerConfig:
    """Read and parse the configuration file of the policy group."""
    file_path = resolve_configuration_file(policy_group)
    logger.debug("loading configuration from %s", file_path)
    try:
        with open(file_path, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        logger.error("failed to load configuration: %s", exc)
        raise ConfigError(f"failed to load configuration from {file_path}: {exc}") from exc
    return load_scheduler_config_from_bytes(content)


_loader: SchedulerConfigLoader = load_scheduler_config_from_file
_loader_lock = threading.Lock()


def load_scheduler_config(policy_group: str) -> SchedulerConfig:
    """Load the policy group's configuration with the current loader."""
    with _loader_lock:
        loader = _loader
    return loader(policy_group)


def set_scheduler_config_loader(loader: SchedulerConfigLoader) -> SchedulerConfigLoader:
    """Replace the loader used by load_scheduler_config and return the previous one."""
    global _loader
    with _loader_lock:
        previous = _loader
        _loader = loader
    return previous


def mock_scheduler_config_by_data(data: Union[bytes, str]) -> SchedulerConfigLoader:
    """Make every policy group load the given YAML; return the previous loader."""
    return set_scheduler_config_loader(lambda _policy_group: load_scheduler_config_from_bytes(data))