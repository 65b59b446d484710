"""synpick: pick a Synthetic model and launch Claude Code with it."""

from .cache import CacheInfo, CacheSnapshot, ModelCache
from .catalog import CatalogFetcher
from .coordinator import ModelCoordinator
from .errors import CacheUnavailable, CatalogUnavailable, ConfigError, RecordInvalid, SynpickError
from .launcher import (
    CommandResult,
    LaunchOutcome,
    ProcessLauncher,
    TierSelection,
    build_launch_environment,
    normalize_model_id,
)
from .models import ModelRecord, Pricing, parse_model_record
from .tool_manager import ExternalToolManager

__version__ = "1.0.0"

__all__ = [
    "CacheInfo",
    "CacheSnapshot",
    "CacheUnavailable",
    "CatalogFetcher",
    "CatalogUnavailable",
    "CommandResult",
    "ConfigError",
    "ExternalToolManager",
    "LaunchOutcome",
    "ModelCache",
    "ModelCoordinator",
    "ModelRecord",
    "Pricing",
    "ProcessLauncher",
    "RecordInvalid",
    "SynpickError",
    "TierSelection",
    "build_launch_environment",
    "normalize_model_id",
    "parse_model_record",
]
