"""
Configuration loader (``clm_config.loader``).

Responsibility
--------------
Reads ``defaults.yaml``, deep-merges an optional override file on top of it
and parses the result into the frozen ``clm_config.schema`` dataclasses.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong type  ->
  ``ConfigurationError`` naming the dotted key.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from clm_config.schema import (
    DatabaseSettings,
    EngineConfig,
    LoggingSettings,
    RetrySettings,
    VersioningSettings,
    WorkflowSettings,
)
from clm_kernel.domain.contract import DEFAULT_TRACKED_FIELDS, TrackedField
from clm_kernel.domain.fields import FieldKind
from clm_kernel.exceptions import ConfigurationError
from clm_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "CLM_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_CONTRACT_COLUMNS = frozenset(tf.name for tf in DEFAULT_TRACKED_FIELDS)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; lists and scalars in ``override`` replace."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """
    Build the engine configuration.

    Resolution order (later wins): ``defaults.yaml``, the file at ``path``
    (or at ``$CLM_CONFIG`` when ``path`` is None), then ``$DATABASE_URL``
    for the database URL.

    Raises:
        ConfigurationError: if any value is missing or invalid.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_PATH)

    override_path = path if path is not None else env.get(CONFIG_ENV_VAR)
    if override_path:
        data = merge(data, load_yaml_file(Path(override_path)))

    if env.get(DATABASE_URL_ENV_VAR):
        data = merge(data, {"database": {"url": env[DATABASE_URL_ENV_VAR]}})

    config = parse_config(data)
    logger.info(
        "config_loaded",
        extra={
            "override_path": str(override_path) if override_path else None,
            "finance_approval_required": config.workflow.finance_approval_required,
            "tracked_field_count": len(config.versioning.tracked_fields),
        },
    )
    return config


def parse_config(data: Mapping[str, Any]) -> EngineConfig:
    """Parse a merged configuration mapping into ``EngineConfig``."""
    known = {"workflow", "versioning", "retry", "database", "logging"}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(sorted(unknown)[0], "unknown configuration section")

    return EngineConfig(
        workflow=parse_workflow(_section(data, "workflow")),
        versioning=parse_versioning(_section(data, "versioning")),
        retry=parse_retry(_section(data, "retry")),
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
    )


def parse_workflow(data: Mapping[str, Any]) -> WorkflowSettings:
    _reject_unknown("workflow", data, WorkflowSettings)
    days = data.get("expiry_reminder_days", [30, 7, 1])
    if not isinstance(days, list) or not all(_is_int(d) and d > 0 for d in days):
        raise ConfigurationError(
            "workflow.expiry_reminder_days", "must be a list of positive integers",
        )
    prefix = data.get("reference_prefix")
    if prefix is not None and (not isinstance(prefix, str) or not prefix.strip()):
        raise ConfigurationError("workflow.reference_prefix", "must be a non-empty string")
    return WorkflowSettings(
        finance_approval_required=_bool(data, "workflow.finance_approval_required", True),
        reference_prefix=prefix.strip().upper() if prefix else None,
        expiry_reminder_days=tuple(sorted(set(days), reverse=True)),
    )


def parse_versioning(data: Mapping[str, Any]) -> VersioningSettings:
    _reject_unknown("versioning", data, VersioningSettings)
    context = data.get("diff_context_lines", 3)
    if not _is_int(context) or context < 0:
        raise ConfigurationError("versioning.diff_context_lines", "must be an integer >= 0")

    raw_fields = data.get("tracked_fields")
    if raw_fields is None:
        tracked = VersioningSettings().tracked_fields
    else:
        tracked = tuple(parse_tracked_field(i, f) for i, f in enumerate(raw_fields))
        names = [tf.name for tf in tracked]
        if len(set(names)) != len(names):
            raise ConfigurationError("versioning.tracked_fields", "field names must be unique")

    return VersioningSettings(
        tracked_fields=tracked,
        diff_context_lines=context,
        split_html_blocks=_bool(data, "versioning.split_html_blocks", False),
    )


def parse_tracked_field(index: int, data: Any) -> TrackedField:
    key = f"versioning.tracked_fields[{index}]"
    if not isinstance(data, Mapping) or not data.get("name"):
        raise ConfigurationError(key, "each tracked field needs a name")
    try:
        kind = FieldKind(data.get("kind", FieldKind.TEXT.value))
    except ValueError:
        raise ConfigurationError(
            f"{key}.kind",
            f"must be one of {', '.join(k.value for k in FieldKind)}",
        ) from None
    name = str(data["name"])
    if name not in _CONTRACT_COLUMNS:
        raise ConfigurationError(
            f"{key}.name",
            f"must be one of {', '.join(sorted(_CONTRACT_COLUMNS))}",
        )
    return TrackedField(name=name, label=str(data.get("label") or name), kind=kind)


def parse_retry(data: Mapping[str, Any]) -> RetrySettings:
    _reject_unknown("retry", data, RetrySettings)
    attempts = data.get("max_attempts", 3)
    if not _is_int(attempts) or attempts < 1:
        raise ConfigurationError("retry.max_attempts", "must be an integer >= 1")
    initial = _number(data, "retry.backoff_initial_seconds", 0.05)
    maximum = _number(data, "retry.backoff_max_seconds", 1.0)
    if maximum < initial:
        raise ConfigurationError(
            "retry.backoff_max_seconds", "must be >= backoff_initial_seconds",
        )
    return RetrySettings(
        max_attempts=attempts,
        backoff_initial_seconds=initial,
        backoff_max_seconds=maximum,
    )


def parse_database(data: Mapping[str, Any]) -> DatabaseSettings:
    _reject_unknown("database", data, DatabaseSettings)
    url = data.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "must be a non-empty string")
    ints = {}
    for name in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
        value = data.get(name, getattr(DatabaseSettings, name))
        if not _is_int(value) or value < 0:
            raise ConfigurationError(f"database.{name}", "must be an integer >= 0")
        ints[name] = value
    return DatabaseSettings(url=url, echo=_bool(data, "database.echo", False), **ints)


def parse_logging(data: Mapping[str, Any]) -> LoggingSettings:
    _reject_unknown("logging", data, LoggingSettings)
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"must be one of {sorted(_LOG_LEVELS)}")
    return LoggingSettings(level=level)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(name, "must be a mapping")
    return value


def _reject_unknown(section: str, data: Mapping[str, Any], cls: type) -> None:
    allowed = set(cls.__dataclass_fields__)
    for key in data:
        if key not in allowed:
            raise ConfigurationError(f"{section}.{key}", "unknown setting")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key.rsplit(".", 1)[1], default)
    if not isinstance(value, bool):
        raise ConfigurationError(key, "must be true or false")
    return value


def _number(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key.rsplit(".", 1)[1], default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError(key, "must be a non-negative number")
    return float(value)
