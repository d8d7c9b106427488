"""Installation and authentication status of the CLI backends."""

from agent_relay.status.auth import AuthStatus, load_app_credentials, probe_auth_status

__all__ = ["AuthStatus", "load_app_credentials", "probe_auth_status"]
