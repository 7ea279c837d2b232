"""
causation_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_settings()`` is the only way to obtain settings at runtime.  It
    reads the packaged ``defaults.yaml`` (or the file given), applies
    environment overrides and returns a frozen ``CausationSettings``.

Failure modes:
    - ``FileNotFoundError`` -- the given settings file does not exist.
    - ``ValueError`` -- a value has the wrong type or is out of range; the
      message names the key.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from causation_kernel.logging_config import get_logger

from causation_config.loader import (
    DEFAULTS_PATH,
    apply_environment,
    load_yaml_file,
    parse_settings,
)
from causation_config.schema import (
    CausationSettings,
    SchedulerSettings,
    SystemActorSettings,
)

logger = get_logger("config")


def get_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> CausationSettings:
    """Load settings from ``path`` (default: packaged defaults) plus env."""
    source = Path(path) if path is not None else DEFAULTS_PATH
    data = load_yaml_file(source)
    merged = apply_environment(data, os.environ if environ is None else environ)
    settings = parse_settings(merged)
    logger.debug(
        "settings_loaded",
        extra={
            "source": str(source),
            "log_level": settings.log_level,
            "scheduler_paused": settings.scheduler.paused,
        },
    )
    return settings


__all__ = [
    "CausationSettings",
    "SchedulerSettings",
    "SystemActorSettings",
    "get_settings",
]
