"""Installation and version queries for Claude Code."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import CLAUDE_NPM_PACKAGE
from .launcher import VERSION_PATTERN, ProcessLauncher

logger = logging.getLogger(__name__)

NPM_TIMEOUT_MS = 30000
NPM_INSTALL_TIMEOUT_MS = 300000


@dataclass(frozen=True)
class UpdateStatus:
    current_version: Optional[str]
    latest_version: Optional[str]

    @property
    def update_available(self) -> bool:
        if not self.current_version or not self.latest_version:
            return False
        return version_tuple(self.latest_version) > version_tuple(self.current_version)


def version_tuple(version: str) -> Tuple[int, ...]:
    match = VERSION_PATTERN.search(version)
    if not match:
        return ()
    return tuple(int(part) for part in match.group(1).split("."))


class ExternalToolManager:
    """Read-only checks plus npm-driven updates for the Claude Code CLI.

    All queries go through the launcher's timeout-guarded command runner,
    so a hung ``claude`` or ``npm`` reads as "not installed" or "unknown".
    """

    def __init__(self, launcher: ProcessLauncher, npm_path: str = "npm"):
        self.launcher = launcher
        self.npm_path = npm_path

    async def get_current_version(self) -> Optional[str]:
        return await self.launcher.get_version()

    async def is_installed(self) -> bool:
        return await self.launcher.check_installation()

    async def get_latest_version(self) -> Optional[str]:
        result = await self.launcher.run_command(
            self.npm_path, ["view", CLAUDE_NPM_PACKAGE, "version"], timeout_ms=NPM_TIMEOUT_MS
        )
        if not result.success:
            logger.debug("npm view failed: %s", result.error or result.stderr.strip())
            return None
        match = VERSION_PATTERN.search(result.stdout)
        return match.group(1) if match else None

    async def check_for_update(self) -> UpdateStatus:
        return UpdateStatus(
            current_version=await self.get_current_version(),
            latest_version=await self.get_latest_version(),
        )

    async def update(self) -> bool:
        """Install the latest Claude Code globally via npm."""
        logger.info("Updating %s via npm", CLAUDE_NPM_PACKAGE)
        result = await self.launcher.run_command(
            self.npm_path, ["install", "-g", f"{CLAUDE_NPM_PACKAGE}@latest"], timeout_ms=NPM_INSTALL_TIMEOUT_MS
        )
        if not result.success:
            logger.error("Claude Code update failed: %s", result.error or result.stderr.strip())
        return result.success
