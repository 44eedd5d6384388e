"""Turn pipeline: command dispatch and the session state machine."""

from .commands import COMMAND_PREFIX, COMMANDS, Command, dispatch, parse_command  # noqa: F401
from .orchestrator import Phase, Router  # noqa: F401
