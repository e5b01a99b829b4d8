"""
Vote tally data model.

A tally is the per-activity vote count for one block, sorted by count
descending. Entries with equal counts keep the order in which their activity
was first seen in the vote set.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class TallyEntry:
    activity_id: str
    vote_count: int = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "vote_count": int(self.vote_count),
        }


@dataclass
class TallySummary:
    """
    Read-only tally for display: sorted entries plus vote and voter totals.
    """

    block_id: str
    entries: List[TallyEntry] = field(default_factory=list)
    total_votes: int = 0
    unique_voters: int = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "entries": [entry.to_document() for entry in self.entries],
            "total_votes": self.total_votes,
            "unique_voters": self.unique_voters,
        }
