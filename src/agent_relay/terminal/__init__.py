"""Interactive pseudo-terminal execution path."""

from agent_relay.terminal.pty_runner import PtyOutcome, pty_supported, run_pty_command
from agent_relay.terminal.setup_token import SetupTokenResult, run_setup_token
from agent_relay.terminal.token_extract import extract_token, strip_ansi

__all__ = [
    "PtyOutcome",
    "SetupTokenResult",
    "extract_token",
    "pty_supported",
    "run_pty_command",
    "run_setup_token",
    "strip_ansi",
]
