"""Default values shared across synpick."""

from pathlib import Path

# Synthetic endpoints
DEFAULT_ANTHROPIC_BASE_URL = "https://api.synthetic.new/anthropic"
DEFAULT_MODELS_API_URL = "https://api.synthetic.new/openai/v1/models"

# Timeouts
DEFAULT_API_TIMEOUT_SECONDS = 30.0
DEFAULT_COMMAND_TIMEOUT_MS = 5000

# Cache duration bounds (hours)
DEFAULT_CACHE_DURATION_HOURS = 24
MIN_CACHE_DURATION_HOURS = 1
MAX_CACHE_DURATION_HOURS = 168

# Max token size bounds
DEFAULT_MAX_TOKEN_SIZE = 128000
MIN_MAX_TOKEN_SIZE = 1000
MAX_MAX_TOKEN_SIZE = 200000

# Model id normalization
KNOWN_PROVIDER_PREFIXES = ("hf:", "openai:", "anthropic:", "claude:", "google:", "meta:")
FALLBACK_PROVIDER_PREFIX = "hf:"

# Tier keys, in the order they are presented
TIER_KEYS = ("default", "opus", "sonnet", "haiku", "subagent", "thinking")
OVERRIDE_TIERS = ("opus", "sonnet", "haiku", "subagent")

# Environment variables read by Claude Code
ENV_BASE_URL = "ANTHROPIC_BASE_URL"
ENV_AUTH_TOKEN = "ANTHROPIC_AUTH_TOKEN"
ENV_DEFAULT_MODEL = "ANTHROPIC_DEFAULT_MODEL"
ENV_TIER_MODELS = {
    "opus": "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "sonnet": "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "haiku": "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "subagent": "CLAUDE_CODE_SUBAGENT_MODEL",
}
ENV_THINKING_MODEL = "ANTHROPIC_THINKING_MODEL"
ENV_MAX_TOKEN_SIZE = "CLAUDE_CODE_MAX_TOKEN_SIZE"
ENV_SYSTEM_PROMPT = "CLAUDE_SYSTEM_PROMPT"
ENV_DISABLE_TRAFFIC = "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC"

# Environment variables read by synpick itself
ENV_API_KEY_NAMES = ("SYNPICK_API_KEY", "SYNTHETIC_API_KEY")
ENV_CONFIG_DIR = "SYNPICK_CONFIG_DIR"

# Downstream tool
DEFAULT_CLAUDE_PATH = "claude"
CLAUDE_NPM_PACKAGE = "@anthropic-ai/claude-code"

# Files
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "synpick"
CONFIG_FILE_NAME = "config.json"
CACHE_FILE_NAME = "models_cache.json"

USER_AGENT = "synpick/1.0.0"
