"""
Runtime configuration for rmtree, read from environment variables.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ENV_PREFIX = "RMTREE_"


@dataclass
class RmtreeConfig:
    """Settings shared by the package index, analyzer and CLI"""

    brew_executable: str = "brew"
    query_timeout: int = 60
    remove_timeout: int = 300
    lookup_workers: int = 1
    log_level: str = "WARNING"
    log_file: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RmtreeConfig":
        """Build a config from RMTREE_* variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()

        log_level = env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            logger.warning(f"Unknown log level {log_level!r}, using {defaults.log_level}")
            log_level = defaults.log_level

        return cls(
            brew_executable=env.get(f"{ENV_PREFIX}BREW") or defaults.brew_executable,
            query_timeout=_positive_int(env, "QUERY_TIMEOUT", defaults.query_timeout),
            remove_timeout=_positive_int(env, "REMOVE_TIMEOUT", defaults.remove_timeout),
            lookup_workers=_positive_int(env, "LOOKUP_WORKERS", defaults.lookup_workers),
            log_level=log_level,
            log_file=env.get(f"{ENV_PREFIX}LOG_FILE") or None,
        )


def _positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(f"{ENV_PREFIX}{key}")
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {ENV_PREFIX}{key}={raw!r}, using {default}")
        return default
    if value < 1:
        logger.warning(f"{ENV_PREFIX}{key} must be positive, using {default}")
        return default
    return value
