"""Persistent synpick configuration."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .constants import (
    CACHE_FILE_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_CACHE_DURATION_HOURS,
    DEFAULT_CLAUDE_PATH,
    DEFAULT_CONFIG_DIR,
    DEFAULT_MAX_TOKEN_SIZE,
    DEFAULT_MODELS_API_URL,
    ENV_API_KEY_NAMES,
    ENV_CONFIG_DIR,
    MAX_CACHE_DURATION_HOURS,
    MAX_MAX_TOKEN_SIZE,
    MIN_CACHE_DURATION_HOURS,
    MIN_MAX_TOKEN_SIZE,
    OVERRIDE_TIERS,
)
from .errors import ConfigError
from .launcher import TierSelection

logger = logging.getLogger(__name__)

STRING_FIELDS = (
    "api_key",
    "anthropic_base_url",
    "models_api_url",
    "selected_model",
    "selected_thinking_model",
    "system_prompt",
    "claude_path",
)


@dataclass
class AppConfig:
    """Configuration for synpick, stored as JSON."""
    api_key: str = ""
    anthropic_base_url: str = DEFAULT_ANTHROPIC_BASE_URL
    models_api_url: str = DEFAULT_MODELS_API_URL
    cache_duration_hours: int = DEFAULT_CACHE_DURATION_HOURS
    selected_model: str = ""
    selected_thinking_model: str = ""
    tier_models: Dict[str, str] = field(default_factory=dict)
    max_token_size: int = DEFAULT_MAX_TOKEN_SIZE
    system_prompt: str = ""
    claude_path: str = DEFAULT_CLAUDE_PATH
    default_args: List[str] = field(default_factory=list)
    first_run_completed: bool = False

    def __post_init__(self):
        if self.default_args is None:
            self.default_args = []
        if self.tier_models is None:
            self.tier_models = {}

    def validate(self) -> None:
        if not isinstance(self.cache_duration_hours, int) or not (
            MIN_CACHE_DURATION_HOURS <= self.cache_duration_hours <= MAX_CACHE_DURATION_HOURS
        ):
            raise ConfigError(
                f"cache_duration_hours must be between {MIN_CACHE_DURATION_HOURS} "
                f"and {MAX_CACHE_DURATION_HOURS}, got {self.cache_duration_hours!r}"
            )
        if not isinstance(self.max_token_size, int) or not (
            MIN_MAX_TOKEN_SIZE <= self.max_token_size <= MAX_MAX_TOKEN_SIZE
        ):
            raise ConfigError(
                f"max_token_size must be between {MIN_MAX_TOKEN_SIZE} "
                f"and {MAX_MAX_TOKEN_SIZE}, got {self.max_token_size!r}"
            )
        for name in STRING_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        if not isinstance(self.first_run_completed, bool):
            raise ConfigError(f"first_run_completed must be true or false, got {self.first_run_completed!r}")
        if not isinstance(self.default_args, list) or not all(isinstance(a, str) for a in self.default_args):
            raise ConfigError(f"default_args must be a list of strings, got {self.default_args!r}")
        if not isinstance(self.tier_models, dict):
            raise ConfigError(f"tier_models must be an object, got {self.tier_models!r}")
        unknown = set(self.tier_models) - set(OVERRIDE_TIERS)
        if unknown:
            raise ConfigError(f"Unknown tiers in tier_models: {', '.join(sorted(unknown))}")
        for tier, model in self.tier_models.items():
            if not isinstance(model, str):
                raise ConfigError(f"tier_models.{tier} must be a model id string, got {model!r}")

    def tier_selection(self) -> TierSelection:
        """Saved selections as a TierSelection (default and thinking included)."""
        selection = TierSelection.from_mapping(self.tier_models)
        selection.default = self.selected_model or None
        selection.thinking = self.selected_thinking_model or None
        return selection

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a JSON file, falling back to defaults."""
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                known = {f.name for f in fields(cls)}
                config = cls(**{key: value for key, value in data.items() if key in known})
                config.validate()
                return config
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            except (OSError, ValueError, TypeError, AttributeError, ConfigError) as e:
                logger.warning("Could not load config from %s: %s. Using defaults.", config_path, e)
        return cls()

    def save_to_file(self, config_path: Path) -> None:
        self.validate()
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                json.dump(asdict(self), f, indent=2)
            # holds the API key
            os.chmod(config_path, 0o600)
        except OSError as e:
            raise ConfigError(f"Could not save config to {config_path}: {e}") from e

    def set_value(self, key: str, raw: str) -> None:
        """Set a field from its string form, e.g. from ``--set-config key=value``."""
        if key.startswith("tier_models."):
            tier = key.split(".", 1)[1]
            if tier not in OVERRIDE_TIERS:
                raise ConfigError(f"Unknown tier '{tier}'. Choose from: {', '.join(OVERRIDE_TIERS)}")
            if raw:
                self.tier_models[tier] = raw
            else:
                self.tier_models.pop(tier, None)
            return

        names = {f.name for f in fields(self)}
        if key not in names or key == "tier_models":
            raise ConfigError(f"Unknown configuration key '{key}'")

        current = getattr(self, key)
        value: Any
        if isinstance(current, bool):
            lowered = raw.strip().lower()
            if lowered not in ("1", "0", "true", "false", "yes", "no"):
                raise ConfigError(f"'{key}' expects true or false, got {raw!r}")
            value = lowered in ("1", "true", "yes")
        elif isinstance(current, int):
            try:
                value = int(raw)
            except ValueError:
                raise ConfigError(f"'{key}' expects an integer, got {raw!r}")
        elif isinstance(current, list):
            value = raw.split()
        else:
            value = raw

        previous = current
        setattr(self, key, value)
        try:
            self.validate()
        except ConfigError:
            setattr(self, key, previous)
            raise

    def public_dict(self) -> Dict[str, Any]:
        """Config as a dict with the API key masked."""
        data = asdict(self)
        data["api_key"] = mask_secret(self.api_key)
        return data


def mask_secret(secret: str) -> str:
    if not secret:
        return ""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"


def get_config_dir(override: Optional[Path] = None) -> Path:
    if override:
        return Path(override).expanduser()
    env_dir = os.environ.get(ENV_CONFIG_DIR)
    if env_dir:
        return Path(env_dir).expanduser()
    return DEFAULT_CONFIG_DIR


def get_config_path(config_dir: Path) -> Path:
    return config_dir / CONFIG_FILE_NAME


def get_cache_path(config_dir: Path) -> Path:
    return config_dir / CACHE_FILE_NAME


def load_environment() -> None:
    """Load a ``.env`` file from the working directory, if present."""
    load_dotenv()


def resolve_api_key(config: AppConfig) -> str:
    """Environment variables take precedence over the stored key."""
    for name in ENV_API_KEY_NAMES:
        value = os.environ.get(name)
        if value:
            return value
    return config.api_key
