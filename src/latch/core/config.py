"""Configuration utilities.

This module provides utilities for loading Latch settings from files and
environment variables.

Expected file format:
```yaml
backend: redis
redis_url: redis://localhost:6379
session_lifetime: 1800      # seconds
renewal_window: 300         # seconds
fail_open: false
```

Environment variables (``LATCH_BACKEND``, ``LATCH_REDIS_URL``,
``LATCH_SESSION_LIFETIME``, ...) override file values.
"""

import json
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from latch.core.exceptions import ConfigError
from latch.session.identifier import IDENTIFIER_BYTES, MIN_IDENTIFIER_BYTES
from latch.session.renewal import RenewalPolicy

ENV_PREFIX = "LATCH_"

SUPPORTED_BACKENDS = {"memory", "redis", "postgresql"}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class LatchConfig:
    """Settings for building a session store and manager.

    Durations are in seconds.
    """

    backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "latch:session:"
    postgres_dsn: Optional[str] = None
    table_name: str = "latch_sessions"
    identifier_bytes: int = IDENTIFIER_BYTES
    max_id_retries: int = 8
    session_lifetime: Optional[float] = None
    renewal_window: Optional[float] = None
    renewal_fraction: Optional[float] = None
    fail_open: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check settings for consistency.

        Raises:
            ConfigError: If a setting is out of range.
        """
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigError(
                f"unknown backend {self.backend!r}, "
                f"expected one of {sorted(SUPPORTED_BACKENDS)}"
            )
        if self.backend == "postgresql" and not self.postgres_dsn:
            raise ConfigError("postgresql backend requires postgres_dsn")
        if self.identifier_bytes < MIN_IDENTIFIER_BYTES:
            raise ConfigError(
                f"identifier_bytes must be at least {MIN_IDENTIFIER_BYTES}"
            )
        if self.max_id_retries < 1:
            raise ConfigError("max_id_retries must be at least 1")
        if self.session_lifetime is not None and self.session_lifetime <= 0:
            raise ConfigError("session_lifetime must be positive")
        if self.renewal_window is not None and self.renewal_window < 0:
            raise ConfigError("renewal_window must not be negative")
        if self.renewal_fraction is not None and not 0 < self.renewal_fraction <= 1:
            raise ConfigError("renewal_fraction must be in (0, 1]")

    @property
    def lifetime(self) -> Optional[timedelta]:
        if self.session_lifetime is None:
            return None
        return timedelta(seconds=self.session_lifetime)

    def renewal_policy(self) -> RenewalPolicy:
        """Build the renewal policy these settings describe."""
        return RenewalPolicy(
            window=(
                timedelta(seconds=self.renewal_window)
                if self.renewal_window is not None
                else None
            ),
            fraction=self.renewal_fraction,
            lifetime=self.lifetime,
        )


def load_config(config_path: str | Path) -> Dict[str, Any]:
    """Load configuration from a YAML or JSON file.

    Args:
        config_path: Path to configuration file.

    Returns:
        Configuration dictionary.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the file format is not supported.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    content = config_path.read_text(encoding="utf-8")

    if config_path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(content) or {}
    elif config_path.suffix == ".json":
        return json.loads(content)
    else:
        raise ValueError(f"Unsupported config format: {config_path.suffix}")


def config_from_dict(config: Mapping[str, Any]) -> LatchConfig:
    """Build a LatchConfig from a configuration dictionary.

    Unknown keys are rejected so typos do not go unnoticed.

    Raises:
        ConfigError: If a key is unknown or a value is invalid.
    """
    known = {f.name for f in fields(LatchConfig)}
    unknown = set(config) - known
    if unknown:
        raise ConfigError(f"unknown settings: {', '.join(sorted(unknown))}")
    try:
        return LatchConfig(**dict(config))
    except TypeError as e:
        raise ConfigError(str(e)) from e


def config_from_env(
    base: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LatchConfig:
    """Build a LatchConfig from ``base`` overridden by ``LATCH_*`` variables.

    Args:
        base: Settings loaded from a file, if any.
        environ: Environment to read. Defaults to ``os.environ``.

    Returns:
        The merged configuration.
    """
    environ = os.environ if environ is None else environ
    merged: Dict[str, Any] = dict(base or {})

    for f in fields(LatchConfig):
        raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is None:
            continue
        merged[f.name] = _parse_env_value(f.name, raw, f.default)

    return config_from_dict(merged)


def _parse_env_value(name: str, raw: str, default: Any) -> Any:
    raw = raw.strip()
    if isinstance(default, bool):
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}")
    if name in ("session_lifetime", "renewal_window", "renewal_fraction"):
        if raw == "":
            return None
        try:
            return float(raw)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a number, got {raw!r}")
    if default is None and raw == "":
        return None
    return raw
