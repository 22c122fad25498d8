"""lm: send stdin to a language model from the command line.

Text read from stdin, optionally rendered through a bundled prompt template
and combined with image URLs, image files, desktop or website screenshots,
is turned into a single chat query. The selected model is checked for the
capabilities the query needs before anything is sent, and the response is
printed (and optionally cached).
"""

from __future__ import annotations

from .cli import app

__all__ = ["app"]
