"""Run one provider query end to end and yield canonical messages."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from agent_relay.config import StreamingSettings
from agent_relay.errors import CliProcessError, ProviderQueryError
from agent_relay.providers.base import CliProvider
from agent_relay.providers.dedup import TextDedupFilter
from agent_relay.providers.models import (
    CancelToken,
    ClassifiedError,
    ErrorKind,
    MessageKind,
    ProviderMessage,
    QueryRequest,
)
from agent_relay.providers.streaming import JsonlProcessStream

logger = logging.getLogger(__name__)


class QueryExecution:
    """One streaming execution: resolve, spawn, normalize, dedup.

    Owns exactly one subprocess plus the session id and dedup state of this
    execution. Use ``open()`` / ``next()`` / ``close()`` or a ``with`` block.
    ``cancelled`` is True when the sequence ended because of cancellation.
    """

    def __init__(
        self,
        provider: CliProvider,
        request: QueryRequest,
        *,
        cancel_token: CancelToken | None = None,
        streaming: StreamingSettings | None = None,
    ) -> None:
        self.provider = provider
        self.request = request
        self.cancel_token = cancel_token or CancelToken()
        self.session_id: str | None = None
        self.cancelled = False
        self._streaming = streaming or StreamingSettings()
        self._stream: JsonlProcessStream | None = None
        self._dedup = TextDedupFilter() if provider.dedup_text else None

    def open(self) -> QueryExecution:
        detection = self.provider.resolve()
        if not detection.installed:
            classified = ClassifiedError(
                kind=ErrorKind.NOT_INSTALLED,
                message=f"{self.provider.cli_name} is not installed",
                recoverable=True,
                suggestion=self.provider.install_instructions(),
            )
            raise ProviderQueryError(classified.message, classified=classified)

        config = self.provider.build_spawn_config(self.request, self.cancel_token)
        logger.debug(
            "Executing %s query (model=%s, writes=%s)",
            self.provider.name,
            self.request.model,
            self.request.allow_writes,
        )
        self._stream = JsonlProcessStream(
            config,
            grace_seconds=self._streaming.grace_seconds,
            strict=self._streaming.strict_ndjson,
            read_chunk_bytes=self._streaming.read_chunk_bytes,
        ).open()
        return self

    def __enter__(self) -> QueryExecution:
        if self._stream is None:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> QueryExecution:
        return self

    def __next__(self) -> ProviderMessage:
        if self._stream is None:
            raise RuntimeError("QueryExecution is not open.")

        while True:
            try:
                record = next(self._stream)
            except StopIteration:
                self.cancelled = self._stream.cancelled
                if self.cancelled:
                    logger.debug("%s query cancelled", self.provider.name)
                raise
            except CliProcessError as error:
                classified = self.provider.classify_error(
                    error.stderr or str(error),
                    error.exit_code,
                )
                raise ProviderQueryError(classified.message, classified=classified) from error

            self._observe_session(record)
            message = self.provider.normalize_event(record)
            if message is None:
                continue
            if message.session_id is None:
                message.session_id = self.session_id
            elif self.session_id is None:
                self.session_id = message.session_id

            if message.kind is MessageKind.ASSISTANT:
                if self._dedup is not None:
                    message.content = self._dedup.filter_blocks(message.content)
                if not message.content:
                    continue
            return message

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self.cancelled = self.cancelled or self._stream.cancelled

    def _observe_session(self, record: dict[str, Any]) -> None:
        if self.session_id is not None:
            return
        if record.get("type") == "system" and record.get("subtype") == "init":
            session_id = record.get("session_id")
            if session_id:
                self.session_id = str(session_id)
                logger.debug("Session started: %s", self.session_id)


def execute_query(
    provider: CliProvider,
    request: QueryRequest,
    *,
    cancel_token: CancelToken | None = None,
    streaming: StreamingSettings | None = None,
) -> Iterator[ProviderMessage]:
    """Generator facade over ``QueryExecution`` that always reaps the subprocess."""

    with QueryExecution(
        provider,
        request,
        cancel_token=cancel_token,
        streaming=streaming,
    ) as execution:
        yield from execution
