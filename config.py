"""Runtime configuration for the iCal feed service."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    """Settings read from environment variables."""
    table_name: str = 'family-calendars'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    max_retries: int = 1


def _read_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default
    if value < 1:
        logger.warning(f"{name} must be positive, got {value}, using {default}")
        return default
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build an AppConfig from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        AppConfig with defaults applied for missing or invalid values
    """
    if environ is None:
        environ = os.environ

    defaults = AppConfig()
    return AppConfig(
        table_name=environ.get('TABLE_NAME') or defaults.table_name,
        log_level=(environ.get('LOG_LEVEL') or defaults.log_level).upper(),
        timeout_seconds=_read_int(
            environ, 'TIMEOUT_SECONDS', defaults.timeout_seconds
        ),
        max_retries=_read_int(environ, 'MAX_RETRIES', defaults.max_retries),
    )
