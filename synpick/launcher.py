"""Launching Claude Code against a chosen model.

Two pieces live here: composing the environment the child process sees,
and supervising spawned processes so that each launch or auxiliary command
settles exactly once.
"""

import asyncio
import enum
import logging
import os
import re
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .constants import (
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_CLAUDE_PATH,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_MAX_TOKEN_SIZE,
    ENV_AUTH_TOKEN,
    ENV_BASE_URL,
    ENV_DEFAULT_MODEL,
    ENV_DISABLE_TRAFFIC,
    ENV_MAX_TOKEN_SIZE,
    ENV_SYSTEM_PROMPT,
    ENV_THINKING_MODEL,
    ENV_TIER_MODELS,
    FALLBACK_PROVIDER_PREFIX,
    KNOWN_PROVIDER_PREFIXES,
    OVERRIDE_TIERS,
)

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+)")

# (delay_seconds, callback) -> handle with .cancel(); matches loop.call_later
CallLater = Callable[[float, Callable[[], None]], Any]


@dataclass
class TierSelection:
    """Model id per tier. Empty tiers fall back to ``default`` when launching,
    except ``thinking``, which is simply left out."""
    default: Optional[str] = None
    opus: Optional[str] = None
    sonnet: Optional[str] = None
    haiku: Optional[str] = None
    subagent: Optional[str] = None
    thinking: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Optional[str]]]) -> "TierSelection":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{key: value or None for key, value in data.items() if key in known})

    def get(self, tier: str) -> Optional[str]:
        return getattr(self, tier)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class LaunchOutcome:
    success: bool
    pid: Optional[int] = None
    error: Optional[str] = None
    process: Optional[asyncio.subprocess.Process] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class CommandResult:
    """Result of a short-lived auxiliary command."""
    success: bool
    code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    timed_out: bool = False


def normalize_model_id(model_id: Optional[str]) -> Optional[str]:
    """Ensure a model id carries a provider prefix. Idempotent.

    >>> normalize_model_id("deepseek-ai/DeepSeek-V3")
    'hf:deepseek-ai/DeepSeek-V3'
    >>> normalize_model_id("openai:gpt-4")
    'openai:gpt-4'
    """
    if not model_id:
        return None
    if not isinstance(model_id, str):
        raise TypeError(f"Model id must be a string, got {model_id!r}")
    for prefix in KNOWN_PROVIDER_PREFIXES:
        if model_id.startswith(prefix):
            return model_id
    return f"{FALLBACK_PROVIDER_PREFIX}{model_id}"


def build_launch_environment(
    tiers: Optional[TierSelection] = None,
    model: Optional[str] = None,
    thinking_model: Optional[str] = None,
    max_token_size: Optional[int] = None,
    base_url: str = DEFAULT_ANTHROPIC_BASE_URL,
    api_key: Optional[str] = None,
    system_prompt: Optional[str] = None,
    overrides: Optional[Mapping[str, str]] = None,
    base_env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Compose the full environment for Claude Code.

    Layers, lowest precedence first: ``base_env`` (the current process
    environment by default), the endpoint, tier models, thinking model,
    token size, then ``overrides``.

    Raises ValueError when neither ``tiers.default`` nor ``model`` names a model.
    """
    tiers = tiers or TierSelection()
    env = dict(os.environ if base_env is None else base_env)

    env[ENV_BASE_URL] = base_url
    if api_key:
        env[ENV_AUTH_TOKEN] = api_key

    default_model = normalize_model_id(tiers.default or model)
    if not default_model:
        raise ValueError("No default model selected")
    env[ENV_DEFAULT_MODEL] = default_model
    for tier in OVERRIDE_TIERS:
        env[ENV_TIER_MODELS[tier]] = normalize_model_id(tiers.get(tier)) or default_model

    thinking = normalize_model_id(tiers.thinking or thinking_model)
    if thinking:
        env[ENV_THINKING_MODEL] = thinking
    else:
        env.pop(ENV_THINKING_MODEL, None)

    env[ENV_MAX_TOKEN_SIZE] = str(max_token_size if max_token_size is not None else DEFAULT_MAX_TOKEN_SIZE)

    if system_prompt:
        env[ENV_SYSTEM_PROMPT] = system_prompt

    env[ENV_DISABLE_TRAFFIC] = "1"

    if overrides:
        env.update(overrides)
    return env


class LaunchState(enum.Enum):
    SPAWNING = "spawning"
    RUNNING = "running"
    FAILED = "failed"


class LaunchSupervisor:
    """Spawning -> Running | Failed. The first event wins; later ones are ignored."""

    def __init__(self, future: "asyncio.Future[LaunchOutcome]"):
        self.result = future
        self.state = LaunchState.SPAWNING

    def _settle(self, state: LaunchState, outcome: LaunchOutcome) -> bool:
        if self.state is not LaunchState.SPAWNING:
            logger.debug("Ignoring %s event; launch already %s", state.value, self.state.value)
            return False
        self.state = state
        self.result.set_result(outcome)
        return True

    def on_spawn(self, process: Any) -> bool:
        return self._settle(LaunchState.RUNNING, LaunchOutcome(success=True, pid=process.pid, process=process))

    def on_error(self, error: BaseException) -> bool:
        return self._settle(LaunchState.FAILED, LaunchOutcome(success=False, error=str(error) or type(error).__name__))


class CommandState(enum.Enum):
    PENDING = "pending"
    CLOSED = "closed"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


class CommandSupervisor:
    """Pending -> Closed | Errored | TimedOut for auxiliary commands.

    The timer handle is cancelled on close and on error, and only the first
    of close, error or timeout resolves the future. A timeout kills the child.
    """

    def __init__(self, future: "asyncio.Future[CommandResult]"):
        self.result = future
        self.state = CommandState.PENDING
        self.timer: Any = None
        self.process: Any = None

    def arm(self, timer: Any) -> None:
        self.timer = timer

    def attach(self, process: Any) -> None:
        self.process = process
        if self.state is CommandState.TIMED_OUT:
            self._kill()

    def _settle(self, state: CommandState, result: CommandResult) -> bool:
        if self.state is not CommandState.PENDING:
            return False
        self.state = state
        if state is not CommandState.TIMED_OUT and self.timer is not None:
            self.timer.cancel()
        self.timer = None
        self.result.set_result(result)
        return True

    def on_close(self, code: Optional[int], stdout: str = "", stderr: str = "") -> bool:
        return self._settle(
            CommandState.CLOSED,
            CommandResult(success=code == 0, code=code, stdout=stdout, stderr=stderr),
        )

    def on_error(self, error: BaseException) -> bool:
        return self._settle(
            CommandState.ERRORED,
            CommandResult(success=False, code=-1, error=str(error) or type(error).__name__),
        )

    def on_timeout(self) -> bool:
        settled = self._settle(
            CommandState.TIMED_OUT,
            CommandResult(success=False, code=None, error="Command timed out", timed_out=True),
        )
        if settled:
            self._kill()
        return settled

    def on_output(self, task: "asyncio.Future") -> None:
        """Done-callback for ``process.communicate()``."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.on_error(error)
            return
        stdout, stderr = task.result()
        self.on_close(self.process.returncode, _decode(stdout), _decode(stderr))

    def _kill(self) -> None:
        if self.process is None:
            return
        try:
            # SIGKILL on POSIX
            self.process.kill()
        except ProcessLookupError:
            logger.debug("Process already exited before kill")


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class ProcessLauncher:
    """Launches Claude Code and runs short probe commands against it."""

    def __init__(
        self,
        claude_path: str = DEFAULT_CLAUDE_PATH,
        timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS,
        base_url: str = DEFAULT_ANTHROPIC_BASE_URL,
        call_later: Optional[CallLater] = None,
    ):
        self.claude_path = claude_path or DEFAULT_CLAUDE_PATH
        self.timeout_ms = timeout_ms or DEFAULT_COMMAND_TIMEOUT_MS
        self.base_url = base_url
        self._call_later = call_later

    def build_environment(self, **kwargs: Any) -> Dict[str, str]:
        kwargs.setdefault("base_url", self.base_url)
        return build_launch_environment(**kwargs)

    async def launch(
        self,
        model: Optional[str] = None,
        tiers: Optional[TierSelection] = None,
        thinking_model: Optional[str] = None,
        additional_args: Optional[Sequence[str]] = None,
        env: Optional[Mapping[str, str]] = None,
        max_token_size: Optional[int] = None,
        api_key: Optional[str] = None,
        system_prompt: Optional[str] = None,
        claude_path: Optional[str] = None,
    ) -> LaunchOutcome:
        """Spawn Claude Code attached to this terminal.

        Always returns a LaunchOutcome; spawn failures are reported in it
        rather than raised.
        """
        loop = asyncio.get_running_loop()
        supervisor = LaunchSupervisor(loop.create_future())
        path = claude_path or self.claude_path
        args: List[str] = list(additional_args or [])

        try:
            child_env = self.build_environment(
                tiers=tiers,
                model=model,
                thinking_model=thinking_model,
                max_token_size=max_token_size,
                api_key=api_key,
                system_prompt=system_prompt,
                overrides=env,
            )
        except (ValueError, TypeError) as e:
            supervisor.on_error(e)
            return await supervisor.result

        logger.debug("Launching %s %s", path, " ".join(args))
        try:
            # stdio is inherited: Claude Code owns the terminal from here on
            process = await asyncio.create_subprocess_exec(path, *args, env=child_env)
        except (OSError, ValueError, TypeError) as e:
            logger.error("Failed to launch Claude Code: %s", e)
            supervisor.on_error(e)
        else:
            supervisor.on_spawn(process)
        return await supervisor.result

    async def run_command(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout_ms: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """Run a short command, capturing output, killed if it exceeds the timeout."""
        loop = asyncio.get_running_loop()
        supervisor = CommandSupervisor(loop.create_future())
        call_later = self._call_later or loop.call_later
        delay = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0
        supervisor.arm(call_later(delay, supervisor.on_timeout))

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env) if env is not None else None,
            )
        except (OSError, ValueError) as e:
            logger.debug("Could not run %s: %s", command, e)
            supervisor.on_error(e)
            return await supervisor.result

        supervisor.attach(process)
        reader = asyncio.ensure_future(process.communicate())
        reader.add_done_callback(supervisor.on_output)
        try:
            result = await supervisor.result
        finally:
            if not reader.done():
                reader.cancel()
        if result.timed_out:
            logger.debug("%s timed out after %.1fs", command, delay)
        return result

    async def check_installation(self) -> bool:
        result = await self.run_command(self.claude_path, ["--version"])
        return result.success

    async def get_version(self) -> Optional[str]:
        """Installed Claude Code version, e.g. ``"2.0.76"``, or None."""
        result = await self.run_command(self.claude_path, ["--version"])
        if not result.success:
            return None
        match = VERSION_PATTERN.search(result.stdout.strip())
        return match.group(1) if match else None
