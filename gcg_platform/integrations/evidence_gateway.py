"""
Evidence attachment counter.

Evidence files live in external storage; the platform only needs to know
how many attachments exist for a target before accepting a score.
"""

from __future__ import annotations

from collections import Counter


class EvidenceGateway:
    """Interface for the evidence store."""

    def count(self, target_type: str, target_id: str) -> int:
        raise NotImplementedError


class InMemoryEvidenceGateway(EvidenceGateway):
    """Counter-backed evidence store for tests and local development."""

    def __init__(self) -> None:
        self._counts: Counter = Counter()

    def attach(self, target_type: str, target_id: str, n: int = 1) -> None:
        self._counts[(target_type, target_id)] += n

    def clear(self, target_type: str, target_id: str) -> None:
        self._counts.pop((target_type, target_id), None)

    def count(self, target_type: str, target_id: str) -> int:
        return self._counts.get((target_type, target_id), 0)
