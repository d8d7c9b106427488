"""Streaming process engine: spawn a CLI and pull its NDJSON stdout as records."""

from __future__ import annotations

import json
import logging
import queue
import subprocess
import threading
from collections import deque
from typing import IO, Any

from agent_relay.errors import CliProcessError, CliSpawnError, NdjsonProtocolError
from agent_relay.providers import wsl
from agent_relay.providers.models import SpawnConfig

logger = logging.getLogger(__name__)

_EOF = object()
_STDERR_TAIL_BYTES = 65_536
_POLL_INTERVAL_SECONDS = 0.05
_CANCEL_WATCH_SECONDS = 0.25


class NdjsonLineBuffer:
    """Reassemble newline-delimited JSON records from arbitrarily split byte chunks.

    Only the current partial line is retained between calls.
    """

    def __init__(self, *, strict: bool = False) -> None:
        self._pending = bytearray()
        self._strict = strict

    @property
    def pending_bytes(self) -> int:
        return len(self._pending)

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Append a chunk and return the records of every completed line."""

        self._pending.extend(chunk)
        records: list[dict[str, Any]] = []
        while True:
            newline = self._pending.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._pending[:newline])
            del self._pending[: newline + 1]
            record = self._parse(line)
            if record is not None:
                records.append(record)
        return records

    def flush(self) -> list[dict[str, Any]]:
        """Parse a trailing line that was never newline-terminated."""

        if not self._pending:
            return []
        line = bytes(self._pending)
        self._pending.clear()
        record = self._parse(line)
        return [record] if record is not None else []

    def _parse(self, line: bytes) -> dict[str, Any] | None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as error:
            if self._strict:
                raise NdjsonProtocolError(
                    f"Invalid NDJSON line from CLI: {error}",
                    line=text,
                ) from error
            logger.warning("Dropping unparsable NDJSON line: %s", text[:200])
            return None
        if not isinstance(parsed, dict):
            if self._strict:
                raise NdjsonProtocolError("NDJSON line is not a JSON object", line=text)
            logger.warning("Dropping non-object NDJSON line: %s", text[:200])
            return None
        return parsed


class JsonlProcessStream:
    """Pull-based, cancellable sequence of JSON records from one CLI subprocess.

    Lifecycle is explicit: ``open()`` spawns the process, ``next()`` yields
    parsed records, ``close()`` terminates and reaps the process. The stream is
    finite and cannot be restarted. Asserting the spawn config's cancel token
    ends the sequence without further records and without raising.
    """

    def __init__(
        self,
        config: SpawnConfig,
        *,
        grace_seconds: float = 2.0,
        strict: bool = False,
        read_chunk_bytes: int = 65_536,
    ) -> None:
        self._config = config
        self._grace_seconds = grace_seconds
        self._read_chunk_bytes = read_chunk_bytes
        self._buffer = NdjsonLineBuffer(strict=strict)
        self._chunks: queue.Queue[bytes | object] = queue.Queue()
        self._records: deque[dict[str, Any]] = deque()
        self._stderr_tail = bytearray()
        self._stderr_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._terminate_lock = threading.Lock()
        self._process: subprocess.Popen[bytes] | None = None
        self._eof = False
        self._finished = False
        self.cancelled = False
        self.exit_code: int | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def open(self) -> JsonlProcessStream:
        if self._process is not None or self._finished:
            raise RuntimeError("JsonlProcessStream can only be opened once.")

        argv = self._argv()
        has_stdin = self._config.stdin_payload is not None
        logger.debug("Spawning CLI: %s (cwd=%s)", " ".join(argv[:6]), self._config.cwd)
        try:
            self._process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=None if self._config.uses_bridge else self._config.cwd,
                env=self._config.env,
                stdin=subprocess.PIPE if has_stdin else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as error:
            raise CliSpawnError(f"CLI command not found: {argv[0]}", command=argv[0]) from error
        except OSError as error:
            raise CliSpawnError(f"CLI failed to start: {error}", command=argv[0]) from error

        self._start_thread(self._pump_stdout, self._process.stdout, "stdout")
        self._start_thread(self._pump_stderr, self._process.stderr, "stderr")
        if has_stdin:
            self._start_thread(self._write_stdin, self._process.stdin, "stdin")
        # Not joined on close: it exits on its own once the stream is finished.
        threading.Thread(
            target=self._watch_cancel,
            daemon=True,
            name=f"cli-cancel-{self.pid}",
        ).start()
        return self

    def __enter__(self) -> JsonlProcessStream:
        if self._process is None:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> JsonlProcessStream:
        return self

    def __next__(self) -> dict[str, Any]:
        if self._process is None:
            raise RuntimeError("JsonlProcessStream is not open.")

        while True:
            if self._finished:
                raise StopIteration
            if self._config.cancel_token.cancelled:
                logger.debug("Cancellation requested, terminating CLI pid=%s", self._process.pid)
                self.cancelled = True
                self.close()
                raise StopIteration
            if self._records:
                return self._records.popleft()
            if self._eof:
                self._finish()
                raise StopIteration

            try:
                item = self._chunks.get(timeout=_POLL_INTERVAL_SECONDS)
            except queue.Empty:
                continue
            if item is _EOF:
                self._eof = True
                self._records.extend(self._buffer.flush())
                continue
            self._records.extend(self._buffer.feed(item))  # type: ignore[arg-type]

    def close(self) -> None:
        """Terminate (if still running) and reap the subprocess. Safe to call repeatedly."""

        process = self._process
        self._finished = True
        if process is None:
            return
        self._terminate()
        for thread in self._threads:
            thread.join(timeout=self._grace_seconds)
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()
        if self.exit_code is None and process.returncode is not None:
            self.exit_code = _normalize_exit_code(process.returncode)

    def stderr_text(self) -> str:
        with self._stderr_lock:
            return self._stderr_tail.decode("utf-8", errors="replace")

    def _finish(self) -> None:
        process = self._process
        assert process is not None
        while True:
            try:
                process.wait(timeout=_POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if self._config.cancel_token.cancelled:
                    break
        if self._config.cancel_token.cancelled:
            # A signal exit caused by the cancel watcher is not a CLI failure.
            self.cancelled = True
            self.close()
            return
        for thread in self._threads:
            thread.join(timeout=self._grace_seconds)
        self._finished = True
        self.exit_code = _normalize_exit_code(process.returncode)
        if self.exit_code != 0:
            stderr = self.stderr_text()
            logger.error("CLI exited with code %s: %s", self.exit_code, stderr.strip()[:500])
            raise CliProcessError(
                f"CLI exited with code {self.exit_code}",
                exit_code=self.exit_code,
                stderr=stderr,
            )

    def _argv(self) -> list[str]:
        if self._config.uses_bridge:
            return wsl.build_bridge_argv(
                self._config.command,
                self._config.args,
                distribution=self._config.bridge_distribution,
                cwd=self._config.cwd,
            )
        return [self._config.command, *self._config.args]

    def _start_thread(self, target, stream: IO[bytes] | None, name: str) -> None:
        thread = threading.Thread(
            target=target,
            args=(stream,),
            daemon=True,
            name=f"cli-{name}-{self.pid}",
        )
        thread.start()
        self._threads.append(thread)

    def _terminate(self) -> None:
        process = self._process
        if process is None:
            return
        with self._terminate_lock:
            if process.poll() is None:
                _terminate_process(process, grace_seconds=self._grace_seconds)

    def _watch_cancel(self) -> None:
        token = self._config.cancel_token
        while not self._finished:
            if token.wait(_CANCEL_WATCH_SECONDS):
                if not self._finished:
                    logger.debug("Cancellation requested, terminating CLI pid=%s", self.pid)
                    self._terminate()
                return

    def _pump_stdout(self, stream: IO[bytes]) -> None:
        try:
            while True:
                chunk = stream.read1(self._read_chunk_bytes)  # type: ignore[attr-defined]
                if not chunk:
                    break
                self._chunks.put(chunk)
        except (OSError, ValueError) as error:
            logger.debug("stdout reader stopped: %s", error)
        finally:
            self._chunks.put(_EOF)

    def _pump_stderr(self, stream: IO[bytes]) -> None:
        try:
            while True:
                chunk = stream.read1(self._read_chunk_bytes)  # type: ignore[attr-defined]
                if not chunk:
                    break
                with self._stderr_lock:
                    self._stderr_tail.extend(chunk)
                    overflow = len(self._stderr_tail) - _STDERR_TAIL_BYTES
                    if overflow > 0:
                        del self._stderr_tail[:overflow]
        except (OSError, ValueError) as error:
            logger.debug("stderr reader stopped: %s", error)

    def _write_stdin(self, stream: IO[bytes]) -> None:
        payload = (self._config.stdin_payload or "").encode("utf-8")
        try:
            stream.write(payload)
            stream.flush()
        except (BrokenPipeError, ValueError) as error:
            logger.debug("CLI closed stdin before the prompt was fully written: %s", error)
        finally:
            try:
                stream.close()
            except BrokenPipeError:
                logger.debug("CLI stdin already closed")


def _terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float) -> None:
    try:
        process.terminate()
    except OSError:
        process.wait()
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.warning("CLI pid=%s ignored SIGTERM, killing", process.pid)
        try:
            process.kill()
        except OSError as error:
            logger.debug("Kill failed, process already gone: %s", error)
        process.wait()


def _normalize_exit_code(returncode: int) -> int:
    # Signal deaths are reported the way a shell would: 128 + signal number.
    if returncode < 0:
        return 128 - returncode
    return returncode
