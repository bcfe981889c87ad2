"""Errors raised by the Beefy API client.

Transport failures (``httpx.HTTPStatusError``, ``httpx.RequestError``) and
malformed JSON bodies are not wrapped; they reach the caller unchanged.
"""

from __future__ import annotations


class FetchShapeError(ValueError):
    """A decoded response body failed a coarse structural check."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {path}: {reason}")
        self.path = path
        self.reason = reason
