"""CLI provider backends and the canonical streaming pipeline."""

from agent_relay.providers.base import AuthSources, CliProvider
from agent_relay.providers.executor import QueryExecution, execute_query
from agent_relay.providers.models import (
    CancelToken,
    ClassifiedError,
    ContentBlock,
    DetectionResult,
    ErrorKind,
    MessageKind,
    ProviderMessage,
    QueryRequest,
    SpawnConfig,
)
from agent_relay.providers.registry import SUPPORTED_PROVIDERS, create_provider

__all__ = [
    "SUPPORTED_PROVIDERS",
    "AuthSources",
    "CancelToken",
    "ClassifiedError",
    "CliProvider",
    "ContentBlock",
    "DetectionResult",
    "ErrorKind",
    "MessageKind",
    "ProviderMessage",
    "QueryExecution",
    "QueryRequest",
    "SpawnConfig",
    "create_provider",
    "execute_query",
]
