"""
clm_config -- engine configuration.

``load_config()`` is the single way to obtain an ``EngineConfig`` at
runtime.  Defaults live in ``defaults.yaml`` next to this module.
"""

from clm_config.loader import load_config
from clm_config.schema import (
    DatabaseSettings,
    EngineConfig,
    LoggingSettings,
    RetrySettings,
    VersioningSettings,
    WorkflowSettings,
)

__all__ = [
    "load_config",
    "EngineConfig",
    "WorkflowSettings",
    "VersioningSettings",
    "RetrySettings",
    "DatabaseSettings",
    "LoggingSettings",
]
