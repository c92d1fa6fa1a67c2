"""
Configuration management module for expense-assistant.

This module handles loading configuration values from config.yaml,
merging defaults, and building the immutable settings objects that are
handed to the notification trigger at construction.
"""

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'data_dir': 'data',
        'path': 'expense_assistant.db',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
    'notifications': {
        'email_enabled': False,
        'email_from': 'noreply@expense-assistant.com',
        'smtp_host': 'localhost',
        'smtp_port': 587,
        'smtp_username': None,
        'smtp_password': None,
        'use_tls': True,
        'timeout': 10,
    },
}

CONFIG_FILE = 'config.yaml'


def _merge_defaults(config: Dict[str, Any], defaults: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in defaults.items():
        if key not in config:
            config[key] = copy.deepcopy(value)
        elif isinstance(value, Mapping) and isinstance(config[key], dict):
            _merge_defaults(config[key], value)
    return config


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (defaults to config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file is missing, empty, or not valid YAML
    """
    config_path = Path(config_path or CONFIG_FILE)
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}",
            details={"config_path": str(config_path)}
        )

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            "Invalid YAML in config file",
            details={"config_path": str(config_path)},
            original_error=e
        ) from e

    if config is None:
        raise ConfigError("Config file is empty", details={"config_path": str(config_path)})
    if not isinstance(config, dict):
        raise ConfigError(
            "Config file must contain a mapping",
            details={"config_path": str(config_path)}
        )

    logger.info(f"Configuration loaded from {config_path}")
    return _merge_defaults(config, DEFAULT_CONFIG)


def default_config() -> Dict[str, Any]:
    """Return a fresh copy of the built-in defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class NotificationSettings:
    """
    Settings the notification trigger is constructed with.

    Attributes:
        email_enabled: Whether notifications are also emailed
        email_from: Sender address
        smtp_host: SMTP server host
        smtp_port: SMTP server port
        smtp_username: Optional login user
        smtp_password: Optional login password
        use_tls: Whether to STARTTLS before sending
        timeout: SMTP socket timeout in seconds
    """
    email_enabled: bool = False
    email_from: str = 'noreply@expense-assistant.com'
    smtp_host: str = 'localhost'
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    use_tls: bool = True
    timeout: float = 10

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None
    ) -> "NotificationSettings":
        """
        Build settings from the ``notifications`` config section.

        ``EMAIL_ENABLED`` and ``EMAIL_FROM`` environment variables override
        the file values.

        Raises:
            ConfigError: If a numeric setting is not a number
        """
        environ = os.environ if environ is None else environ
        section = dict(DEFAULT_CONFIG['notifications'])
        section.update(config.get('notifications') or {})

        if 'EMAIL_ENABLED' in environ:
            section['email_enabled'] = environ['EMAIL_ENABLED']
        if environ.get('EMAIL_FROM'):
            section['email_from'] = environ['EMAIL_FROM']

        try:
            smtp_port = int(section['smtp_port'])
            timeout = float(section['timeout'])
        except (TypeError, ValueError) as e:
            raise ConfigError(
                "Invalid notification SMTP settings",
                details={"smtp_port": section.get('smtp_port'), "timeout": section.get('timeout')},
                original_error=e
            ) from e

        return cls(
            email_enabled=_as_bool(section['email_enabled']),
            email_from=str(section['email_from']),
            smtp_host=str(section['smtp_host']),
            smtp_port=smtp_port,
            smtp_username=section.get('smtp_username'),
            smtp_password=section.get('smtp_password'),
            use_tls=_as_bool(section['use_tls']),
            timeout=timeout,
        )
