"""
Commitment result types.

``resolve_commit`` never raises for an expected refusal. It returns a
CommitResult whose ``outcome`` tells the caller what happened and whether a
commit row now exists. ``tie_detected`` and ``needs_confirmation`` are not
errors: they ask the caller to re-invoke with more input.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.tallies import TallyEntry
from shared.trips.models import Commit


class CommitOutcome(Enum):
    SUCCESS = "success"
    TIE_DETECTED = "tie_detected"
    NEEDS_CONFIRMATION = "needs_confirmation"
    UNAUTHORIZED = "unauthorized"
    ALREADY_COMMITTED = "already_committed"
    STORAGE_CONFLICT = "storage_conflict"
    NO_VOTES = "no_votes"
    DUPLICATE_BLOCKED = "duplicate_blocked"
    TRIP_NOT_FOUND = "trip_not_found"
    BLOCK_NOT_FOUND = "block_not_found"


class DuplicateVerdict(Enum):
    PROCEED = "proceed"
    BLOCKED = "blocked"
    NEEDS_CONFIRMATION = "needs_confirmation"


@dataclass
class DuplicateConflict:
    """Another block in the trip already committed to the same activity."""

    block_id: str
    commit_id: Optional[str] = None
    label: Optional[str] = None
    day: Optional[str] = None
    position: Optional[int] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "commit_id": self.commit_id,
            "label": self.label,
            "day": self.day,
            "position": self.position,
        }


@dataclass
class DuplicateDecision:
    verdict: DuplicateVerdict
    policy: str
    conflicts: List[DuplicateConflict] = field(default_factory=list)

    @property
    def proceed(self) -> bool:
        return self.verdict == DuplicateVerdict.PROCEED


@dataclass
class CommitResult:
    outcome: CommitOutcome
    commit: Optional[Commit] = None
    tally: List[TallyEntry] = field(default_factory=list)
    tied: List[TallyEntry] = field(default_factory=list)
    conflicts: List[DuplicateConflict] = field(default_factory=list)
    policy: Optional[str] = None
    message: str = ""
    purged_proposals: int = 0
    cleanup_error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.outcome == CommitOutcome.SUCCESS

    @property
    def committed(self) -> bool:
        return self.outcome == CommitOutcome.SUCCESS and self.commit is not None

    @property
    def is_already_committed(self) -> bool:
        # A lost insert race reads the same as a pre-existing commit
        return self.outcome in (CommitOutcome.ALREADY_COMMITTED, CommitOutcome.STORAGE_CONFLICT)

    @property
    def needs_input(self) -> bool:
        return self.outcome in (CommitOutcome.TIE_DETECTED, CommitOutcome.NEEDS_CONFIRMATION)

    def to_document(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "success": bool(self),
            "message": self.message,
            "commit": self.commit.to_dict() if self.commit else None,
            "vote_tally": [entry.to_document() for entry in self.tally],
            "tied_activities": [entry.to_document() for entry in self.tied],
            "conflicts": [conflict.to_document() for conflict in self.conflicts],
            "duplicate_policy": self.policy,
            "purged_proposals": self.purged_proposals,
            "cleanup_error": self.cleanup_error,
        }
