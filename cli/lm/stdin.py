"""Bounded read of the prompt from standard input."""

from __future__ import annotations

import queue
import sys
import threading
from typing import TextIO

from .errors import StdinTimeoutError


def read_stdin(timeout: float, stream: TextIO | None = None) -> str:
    """Read all of ``stream`` (stdin by default), giving up after ``timeout`` seconds.

    The reader runs in a daemon thread; on timeout it is abandoned rather
    than interrupted, and whatever it had buffered is discarded.
    """
    source = sys.stdin if stream is None else stream
    handoff: queue.Queue[tuple[str | None, BaseException | None]] = queue.Queue(maxsize=1)

    def _reader() -> None:
        try:
            handoff.put((source.read(), None))
        except BaseException as exc:  # handed to the caller below
            handoff.put((None, exc))

    threading.Thread(target=_reader, name="lm-stdin-reader", daemon=True).start()
    try:
        text, error = handoff.get(timeout=timeout)
    except queue.Empty:
        raise StdinTimeoutError(timeout) from None
    if error is not None:
        raise error
    return text or ""
