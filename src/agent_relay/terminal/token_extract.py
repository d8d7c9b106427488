"""Pull a credential token out of an interactive CLI transcript."""

from __future__ import annotations

import re

_ANSI_PATTERN = re.compile(r"\x1b\][^\x07]*\x07|\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b[@-_]")
_TOKEN_CHARS = r"[A-Za-z0-9_\-.]"
_LABELED_TOKEN = re.compile(rf"\btoken[:\s]+[\"']?({_TOKEN_CHARS}{{40,}})[\"']?", re.IGNORECASE)
_AFTER_SUCCESS = re.compile(
    rf"(?:success|authenticated|generated|token is)[^\n]*\n\s*({_TOKEN_CHARS}{{40,}})",
    re.IGNORECASE,
)
_STANDALONE = re.compile(rf"^{_TOKEN_CHARS}{{40,}}$")


def strip_ansi(text: str) -> str:
    return _ANSI_PATTERN.sub("", text)


def extract_token(transcript: str, env_var: str) -> str | None:
    """Return the first token found in ``transcript``, or None.

    Patterns, in order: ``ENV_VAR=value`` / ``ENV_VAR: value``; a ``token:``
    label followed by 40+ token characters; a 40+ character value on the line
    after a success message; a line made only of 40+ token characters.
    """

    cleaned = strip_ansi(transcript).replace("\r\n", "\n").replace("\r", "\n")

    env_match = re.search(
        rf"{re.escape(env_var)}[=:]\s*[\"']?({_TOKEN_CHARS}+)[\"']?",
        cleaned,
        re.IGNORECASE,
    )
    if env_match:
        return env_match.group(1)

    for pattern in (_LABELED_TOKEN, _AFTER_SUCCESS):
        match = pattern.search(cleaned)
        if match:
            return match.group(1)

    for line in cleaned.split("\n"):
        candidate = line.strip()
        if _STANDALONE.match(candidate):
            return candidate
    return None
