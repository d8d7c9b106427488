"""Controller for the streaming query CLI command."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path

from agent_relay.config import Settings
from agent_relay.providers.executor import QueryExecution
from agent_relay.providers.models import CancelToken, QueryRequest
from agent_relay.providers.registry import create_provider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueryCommand:
    """CLI input for one streamed query."""

    provider: str
    prompt: str
    model: str | None = None
    cwd: Path | None = None
    allow_writes: bool = False
    cancel_token: CancelToken | None = None


class QueryCliController:
    """Streams canonical provider messages as NDJSON lines."""

    def query(self, command: QueryCommand) -> Generator[str, None, None]:
        settings = Settings.from_env()
        provider = create_provider(command.provider, settings.detection)
        request = QueryRequest(
            prompt=command.prompt,
            model=command.model,
            cwd=str(command.cwd) if command.cwd else None,
            allow_writes=command.allow_writes,
        )
        with QueryExecution(
            provider,
            request,
            cancel_token=command.cancel_token,
            streaming=settings.streaming,
        ) as execution:
            for message in execution:
                yield json.dumps(message.to_dict(), ensure_ascii=False)
            if execution.cancelled:
                logger.info("Query cancelled: provider=%s", provider.name)
