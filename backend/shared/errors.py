"""
Error taxonomy for the ingestion and fan-out pipeline.

Raised by the fetch layer and storage; caught at the adapter, agent,
job and hub boundaries, which turn them into empty results and log lines.
Duplicate content is not an error: see ``ingest.dedup.deduplicator.DedupSkip``.
"""
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class RobotsDisallowedError(PipelineError):
    """The host's robots rules forbid this URL; no request was made."""

    def __init__(self, url: str) -> None:
        super().__init__(f"robots.txt disallows {url}")
        self.url = url


class FetchError(PipelineError):
    """Network retrieval failed after the retry budget was spent."""

    def __init__(
        self,
        url: str,
        attempts: int,
        status: Optional[int] = None,
        reason: str = "",
    ) -> None:
        detail = f"status={status}" if status is not None else reason or "network error"
        super().__init__(f"fetch failed for {url} after {attempts} attempt(s): {detail}")
        self.url = url
        self.attempts = attempts
        self.status = status
        self.reason = reason


class ParseError(PipelineError):
    """An upstream payload could not be parsed into the expected shape."""

    def __init__(self, source: str, detail: str) -> None:
        super().__init__(f"could not parse payload from {source}: {detail}")
        self.source = source
        self.detail = detail


class PersistenceError(PipelineError):
    """A storage write failed."""

    def __init__(self, entity_id: str, detail: str = "") -> None:
        super().__init__(f"could not persist {entity_id}: {detail}" if detail else f"could not persist {entity_id}")
        self.entity_id = entity_id
        self.detail = detail


class BroadcastError(PipelineError):
    """Delivery to a single connection failed."""

    def __init__(self, connection_id: str, detail: str = "") -> None:
        super().__init__(f"delivery to {connection_id} failed: {detail}")
        self.connection_id = connection_id
        self.detail = detail
