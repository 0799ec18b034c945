"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``; ``ledger_services`` translates a ``LedgerConfig``
    into service arguments.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from ledger_config.loader import compute_checksum, load_yaml_file, parse_ledger_config
from ledger_config.schema import LedgerConfig
from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

DATABASE_URL_ENV = "LEDGER_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Loads ``path`` (default: ``ledger_config/sets/default.yaml``) and
    applies ``LEDGER_DATABASE_URL`` from the environment when set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(config_path)
    config = parse_ledger_config(data)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = dataclasses.replace(config, database_url=env_url)

    logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "config_path": str(config_path),
            "checksum": compute_checksum(data),
            "database_url_from_env": bool(env_url),
        },
    )
    return config


__all__ = [
    "LedgerConfig",
    "get_active_config",
    "DEFAULT_CONFIG_PATH",
    "DATABASE_URL_ENV",
]
