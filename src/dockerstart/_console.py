from __future__ import annotations

import datetime as dt

from rich.console import Console


def _console() -> Console:
    # Commands contain brackets (select[mem>...]) and colons rich must not interpret.
    return Console(
        stderr=True, highlight=False, markup=False, emoji=False, soft_wrap=True
    )


def _timestamp() -> str:
    return dt.datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")


def diagnostic(message: str, *, timestamped: bool = True) -> None:
    """Write one diagnostic line to stderr, never to stdout."""
    line = f"[ {_timestamp()} ] {message}" if timestamped else message
    _console().print(line)
