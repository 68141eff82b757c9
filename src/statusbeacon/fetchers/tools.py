"""Tool availability checks via shell commands."""

import asyncio
import logging
from collections.abc import Mapping

from ..config import ToolConfig
from ..exceptions import ExecutionError, FetchError, NotConfiguredError
from ..models import ToolStatus
from ..sources import Source
from .base import BaseFetcher, FetchContext, describe_failure, run_command

logger = logging.getLogger(__name__)

# Per-command timeout in seconds
TOOL_CHECK_TIMEOUT = 5.0


class ToolCheckFetcher(BaseFetcher[list[ToolStatus]]):
    """Check every configured tool by running its check command.

    Exit code 0 means available. All checks run concurrently; a failing or
    hung check only affects its own status entry.
    """

    source = Source.TOOLS

    def __init__(
        self,
        tools: Mapping[str, ToolConfig],
        command_timeout: float = TOOL_CHECK_TIMEOUT,
    ) -> None:
        """Initialize the fetcher.

        Args:
            tools: Tool id to check configuration
            command_timeout: Seconds each check command may run
        """
        self.tools = dict(tools)
        self.command_timeout = command_timeout
        # Leave room for the slowest check plus process teardown
        self.timeout = command_timeout + 5.0

    async def _fetch(self, context: FetchContext) -> list[ToolStatus]:
        if not self.tools:
            raise NotConfiguredError("No tools configured for checking")

        logger.debug("Checking status of %d tools", len(self.tools))
        statuses = await asyncio.gather(
            *(self.check_tool(tool_id, config) for tool_id, config in self.tools.items())
        )
        available = sum(1 for status in statuses if status.available)
        logger.debug("Completed checking %d tools - %d available", len(statuses), available)
        return list(statuses)

    async def check_tool(self, tool_id: str, config: ToolConfig) -> ToolStatus:
        """Run one tool's check command.

        Args:
            tool_id: Tool identifier
            config: Check configuration

        Returns:
            ToolStatus; failures are recorded on the status, never raised
        """
        error: FetchError | None = None
        try:
            output = await run_command(config.check_command, timeout=self.command_timeout)
        except FetchError as e:
            error = e
        else:
            if output.returncode != 0:
                error = ExecutionError(describe_failure(output))

        logger.debug("Tool %s check result: %s", tool_id, "unavailable" if error else "available")
        return ToolStatus(
            id=tool_id,
            name=config.title,
            available=error is None,
            help_text=config.help,
            check_command=config.check_command,
            error=error,
        )
