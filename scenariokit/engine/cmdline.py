"""
scenariokit/engine/cmdline.py

Shell-like argument splitting for run templates and user flags, plus
display-only quoting for echoing commands into the output log.

Arguments are always passed to processes as a vector; nothing here is ever
handed to a shell.
"""

from __future__ import annotations

import re
from typing import Iterable, List

_WHITESPACE = re.compile(r"\s")
_WHITESPACE_RUN = re.compile(r"\s+")


def tokenize(text: str) -> List[str]:
    """
    Split text on unescaped whitespace.

    Single and double quotes group characters (the quotes are dropped), a
    backslash escapes the next character, an unterminated quote runs to the
    end of the input and a trailing lone backslash is kept.
    """
    text = text.strip()
    if not text:
        return []

    args: List[str] = []
    current = ""
    quote = None
    escaping = False
    in_token = False

    for char in text:
        if escaping:
            current += char
            escaping = False
            continue

        if char == "\\":
            escaping = True
            in_token = True
            continue

        if quote:
            if char == quote:
                quote = None
            else:
                current += char
            continue

        if char in ("'", '"'):
            quote = char
            in_token = True
            continue

        if _WHITESPACE.match(char):
            if in_token:
                args.append(current)
                current = ""
                in_token = False
            continue

        current += char
        in_token = True

    if escaping:
        current += "\\"
    if in_token:
        args.append(current)
    return args


def quote_if_needed(token: str) -> str:
    """Wrap in double quotes iff the token contains whitespace. Display only."""
    return f'"{token}"' if _WHITESPACE.search(token) else token


def format_command(command: str, args: Iterable[str]) -> str:
    return " ".join(quote_if_needed(part) for part in [command, *args])


def normalize_run_flags(value: str) -> str:
    """Trim and collapse whitespace into a stable single-line representation."""
    return _WHITESPACE_RUN.sub(" ", value.strip())
