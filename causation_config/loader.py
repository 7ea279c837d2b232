"""
Settings loader (``causation_config.loader``).

Responsibility
--------------
Reads a YAML settings document, applies environment overrides and parses
the result into the frozen ``causation_config.schema`` dataclasses.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key.
* Environment overrides win over file values; the file wins over defaults.
* The returned settings are immutable.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong type or out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping
from uuid import UUID

import yaml

from causation_batch.domain.types import ProcessType
from causation_config.schema import (
    CausationSettings,
    SchedulerSettings,
    SystemActorSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings document must be a mapping")
    return data


# ---------------------------------------------------------------------------
# Scalar parsers
# ---------------------------------------------------------------------------


def parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE:
        return True
    if isinstance(value, str) and value.strip().lower() in _FALSE:
        return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def parse_int(key: str, value: Any, minimum: int, maximum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key}: expected an integer, got {value!r}") from None
    if parsed < minimum or (maximum is not None and parsed > maximum):
        bound = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
        raise ValueError(f"{key}: {parsed} is outside {bound}")
    return parsed


def parse_log_level(key: str, value: Any) -> str:
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"{key}: unknown log level {value!r}")
    return level


def parse_process_types(key: str, value: Any) -> tuple[ProcessType, ...]:
    """Accept process codes (``INTEREST``) or member names (``CURRENT_INTEREST``)."""
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key}: expected a list, got {value!r}")
    parsed: list[ProcessType] = []
    for item in value:
        text = str(item).strip().upper()
        if text in ProcessType.__members__:
            process_type = ProcessType[text]
        else:
            try:
                process_type = ProcessType(text)
            except ValueError:
                raise ValueError(f"{key}: unknown process type {item!r}") from None
        if process_type not in parsed:
            parsed.append(process_type)
    return tuple(parsed)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{key}: expected a mapping, got {value!r}")
    return value


def parse_scheduler(data: Mapping[str, Any]) -> SchedulerSettings:
    defaults = SchedulerSettings()
    return SchedulerSettings(
        enabled_process_types=(
            parse_process_types(
                "scheduler.enabled_process_types", data["enabled_process_types"]
            )
            if "enabled_process_types" in data
            else defaults.enabled_process_types
        ),
        hour=parse_int("scheduler.hour", data.get("hour", defaults.hour), 0, 23),
        tick_interval_seconds=parse_int(
            "scheduler.tick_interval_seconds",
            data.get("tick_interval_seconds", defaults.tick_interval_seconds),
            1,
        ),
        paused=parse_bool("scheduler.paused", data.get("paused", defaults.paused)),
    )


def parse_system_actor(data: Mapping[str, Any]) -> SystemActorSettings:
    defaults = SystemActorSettings()
    raw_id = data.get("user_id", defaults.user_id)
    try:
        user_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
    except ValueError:
        raise ValueError(f"system_actor.user_id: not a UUID: {raw_id!r}") from None
    user_name = str(data.get("user_name", defaults.user_name)).strip()
    if not user_name:
        raise ValueError("system_actor.user_name: must not be empty")
    return SystemActorSettings(user_id=user_id, user_name=user_name)


def parse_settings(data: Mapping[str, Any]) -> CausationSettings:
    """Parse a full settings mapping (already merged with overrides)."""
    defaults = CausationSettings()
    database_url = str(data.get("database_url", defaults.database_url)).strip()
    if not database_url:
        raise ValueError("database_url: must not be empty")
    return CausationSettings(
        database_url=database_url,
        echo_sql=parse_bool("echo_sql", data.get("echo_sql", defaults.echo_sql)),
        log_level=parse_log_level("log_level", data.get("log_level", defaults.log_level)),
        scheduler=parse_scheduler(_section(data, "scheduler")),
        system_actor=parse_system_actor(_section(data, "system_actor")),
    )


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def apply_environment(data: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged: dict[str, Any] = dict(data)
    scheduler = dict(_section(data, "scheduler"))

    if "CAUSATION_DATABASE_URL" in environ:
        merged["database_url"] = environ["CAUSATION_DATABASE_URL"]
    if "CAUSATION_LOG_LEVEL" in environ:
        merged["log_level"] = environ["CAUSATION_LOG_LEVEL"]
    if "CAUSATION_SCHEDULER_HOUR" in environ:
        scheduler["hour"] = environ["CAUSATION_SCHEDULER_HOUR"]
    if "PAUSE_SCHEDULER" in environ:
        scheduler["paused"] = parse_bool("PAUSE_SCHEDULER", environ["PAUSE_SCHEDULER"])

    merged["scheduler"] = scheduler
    return merged
