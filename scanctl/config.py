"""
Configuration loading for scanctl.

Settings come from dataclass defaults, then an optional YAML file, then
``SCANCTL_*`` environment variables (a ``.env`` file is honoured).
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DIRECTORIES = ['node_modules', 'dist', '.git', 'build', 'vendor']
DEFAULT_MAX_FILE_SIZE = 100000
DUPLICATE_POLICIES = ('reject', 'coalesce')


@dataclass
class RateLimitConfig:
    """Token bucket settings for the AI service."""
    requests_per_minute: int = 15
    requests_per_day: int = 1500

    # Quota exhaustion circuit breaker
    cooldown_seconds: float = 60.0
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 3

    # Slow down when a bucket runs low
    heavy_caution_ratio: float = 0.2
    heavy_caution_delay_seconds: float = 3.0
    light_caution_ratio: float = 0.5
    light_caution_delay_seconds: float = 1.0

    # Longest we will sleep waiting for a single token to accrue
    max_token_wait_seconds: float = 30.0


@dataclass
class RetryConfig:
    """Exponential backoff for AI service calls."""
    max_retries: int = 3
    initial_backoff_ms: int = 500
    backoff_multiplier: float = 1.5


@dataclass
class BatchConfig:
    """File batching within a single scan job."""
    batch_size: int = 5
    batch_delay_ms: int = 4000


@dataclass
class ScanSettings:
    """All tunables for a scan run."""
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    batching: BatchConfig = field(default_factory=BatchConfig)

    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_listed_size: Optional[int] = None
    skip_directories: List[str] = field(default_factory=lambda: list(DEFAULT_SKIP_DIRECTORIES))
    checkpoint_interval: int = 10

    retention_seconds: float = 3600.0
    max_retained_jobs: int = 500
    duplicate_policy: str = 'reject'

    model: str = 'gemini-2.0-flash'
    analysis_types: List[str] = field(default_factory=lambda: ['security', 'quality'])
    log_level: str = 'INFO'

    # Empty disables webhook delivery
    webhook_url: str = ''

    @property
    def coalesce_duplicates(self) -> bool:
        return self.duplicate_policy == 'coalesce'


# YAML section -> (settings attribute path, {yaml key: attribute})
_YAML_SECTIONS: Dict[str, Tuple[Optional[str], Dict[str, str]]] = {
    'rate_limits': ('rate_limits', {
        'requests_per_minute': 'requests_per_minute',
        'requests_per_day': 'requests_per_day',
        'cooldown_seconds': 'cooldown_seconds',
        'poll_interval_seconds': 'poll_interval_seconds',
        'max_poll_attempts': 'max_poll_attempts',
        'heavy_caution_ratio': 'heavy_caution_ratio',
        'heavy_caution_delay_seconds': 'heavy_caution_delay_seconds',
        'light_caution_ratio': 'light_caution_ratio',
        'light_caution_delay_seconds': 'light_caution_delay_seconds',
        'max_token_wait_seconds': 'max_token_wait_seconds',
    }),
    'retry': ('retry', {
        'max_retries': 'max_retries',
        'initial_backoff_ms': 'initial_backoff_ms',
        'backoff_multiplier': 'backoff_multiplier',
    }),
    'batching': ('batching', {
        'batch_size': 'batch_size',
        'delay_between_batches_ms': 'batch_delay_ms',
    }),
    'scan': (None, {
        'max_file_size': 'max_file_size',
        'max_listed_size': 'max_listed_size',
        'skip_directories': 'skip_directories',
        'checkpoint_interval': 'checkpoint_interval',
    }),
    'jobs': (None, {
        'retention_seconds': 'retention_seconds',
        'max_retained': 'max_retained_jobs',
        'duplicate_policy': 'duplicate_policy',
    }),
    'ai': (None, {
        'model': 'model',
        'analysis_types': 'analysis_types',
    }),
    'logging': (None, {
        'level': 'log_level',
    }),
    'notifications': (None, {
        'webhook_url': 'webhook_url',
    }),
}

# Environment variable -> (section attribute or None, attribute)
_ENV_OVERRIDES: Dict[str, Tuple[Optional[str], str]] = {
    'SCANCTL_REQUESTS_PER_MINUTE': ('rate_limits', 'requests_per_minute'),
    'SCANCTL_REQUESTS_PER_DAY': ('rate_limits', 'requests_per_day'),
    'SCANCTL_COOLDOWN_SECONDS': ('rate_limits', 'cooldown_seconds'),
    'SCANCTL_MAX_RETRIES': ('retry', 'max_retries'),
    'SCANCTL_INITIAL_BACKOFF_MS': ('retry', 'initial_backoff_ms'),
    'SCANCTL_BATCH_SIZE': ('batching', 'batch_size'),
    'SCANCTL_BATCH_DELAY_MS': ('batching', 'batch_delay_ms'),
    'SCANCTL_MAX_FILE_SIZE': (None, 'max_file_size'),
    'SCANCTL_SKIP_DIRECTORIES': (None, 'skip_directories'),
    'SCANCTL_DUPLICATE_POLICY': (None, 'duplicate_policy'),
    'SCANCTL_LOG_LEVEL': (None, 'log_level'),
    'SCANCTL_WEBHOOK_URL': (None, 'webhook_url'),
    'GEMINI_MODEL': (None, 'model'),
    'SCANCTL_MODEL': (None, 'model'),
}


def _coerce(current: Any, value: Any) -> Any:
    """Convert ``value`` to the type of the attribute it replaces."""
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.strip().lower() in ('true', '1', 'yes')
        return bool(value)
    if isinstance(current, int) or current is None:
        if value is None:
            return None
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(',') if item.strip()]
        return [str(item) for item in value]
    return str(value)


def _assign(target: Any, attribute: str, value: Any, source: str) -> None:
    try:
        setattr(target, attribute, _coerce(getattr(target, attribute), value))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid value {value!r} for {attribute} from {source}")


def _apply_yaml(settings: ScanSettings, data: Dict[str, Any], source: str) -> None:
    for section_name, (attr_path, keymap) in _YAML_SECTIONS.items():
        section = data.get(section_name)
        if not isinstance(section, dict):
            continue
        target = getattr(settings, attr_path) if attr_path else settings
        for key, attribute in keymap.items():
            if key in section:
                _assign(target, attribute, section[key], source)


def _apply_env(settings: ScanSettings) -> None:
    for env_name, (attr_path, attribute) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        target = getattr(settings, attr_path) if attr_path else settings
        _assign(target, attribute, value, env_name)


def _validate(settings: ScanSettings) -> None:
    if settings.duplicate_policy not in DUPLICATE_POLICIES:
        logger.warning(f"Unknown duplicate_policy {settings.duplicate_policy!r}, using 'reject'")
        settings.duplicate_policy = 'reject'
    if settings.batching.batch_size < 1:
        logger.warning("batch_size must be at least 1, using 1")
        settings.batching.batch_size = 1
    if settings.retry.max_retries < 0:
        settings.retry.max_retries = 0


def default_config_paths() -> List[Path]:
    """Locations searched for a config file when none is given explicitly."""
    paths = []
    env_path = os.getenv("SCANCTL_CONFIG")
    if env_path:
        paths.append(Path(env_path))
    paths.append(Path.cwd() / "scanctl.yaml")
    paths.append(Path.home() / ".scanctl" / "config.yaml")
    return paths


def load_settings(config_path: Optional[Path] = None, use_env: bool = True) -> ScanSettings:
    """Build ScanSettings from defaults, a YAML file and the environment.

    Args:
        config_path: Explicit config file. Must exist when given.
        use_env: Apply .env and SCANCTL_* environment overrides.

    Returns:
        Populated ScanSettings

    Raises:
        ConfigError: If an explicit config file does not exist
    """
    settings = ScanSettings()

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        candidates = [config_path]
    else:
        candidates = [p for p in default_config_paths() if p.exists()]

    if candidates:
        path = candidates[0]
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if isinstance(data, dict):
                _apply_yaml(settings, data, str(path))
                logger.info(f"Loaded configuration from {path}")
            else:
                logger.warning(f"Ignoring config file {path}: top level is not a mapping")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load configuration from {path}: {e}")

    if use_env:
        load_dotenv(override=False)
        _apply_env(settings)

    _validate(settings)
    return settings
