"""
Structured results for vote, proposal and settings operations.

Failures are values, not exceptions: callers branch on ``outcome`` and every
result serializes through ``to_document()`` for the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from shared.trips.models import Block, Proposal, Trip, Vote


class VoteOutcome(Enum):
    CAST = "cast"
    REMOVED = "removed"
    NOOP = "noop"
    BLOCK_NOT_FOUND = "block_not_found"
    NOT_A_MEMBER = "not_a_member"
    UNAUTHORIZED = "unauthorized"
    PROPOSAL_NOT_FOUND = "proposal_not_found"
    VOTING_NOT_OPEN = "voting_not_open"
    VOTING_CLOSED = "voting_closed"


_VOTE_SUCCESS = {VoteOutcome.CAST, VoteOutcome.REMOVED, VoteOutcome.NOOP}


@dataclass
class VoteResult:
    outcome: VoteOutcome
    vote: Optional[Vote] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.outcome in _VOTE_SUCCESS

    def to_document(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "success": bool(self),
            "message": self.message,
            "vote": self.vote.to_dict() if self.vote else None,
        }


class ProposalOutcome(Enum):
    CREATED = "created"
    WITHDRAWN = "withdrawn"
    NOOP = "noop"
    ALREADY_PROPOSED = "already_proposed"
    BLOCK_NOT_FOUND = "block_not_found"
    NOT_A_MEMBER = "not_a_member"


_PROPOSAL_SUCCESS = {ProposalOutcome.CREATED, ProposalOutcome.WITHDRAWN, ProposalOutcome.NOOP}


@dataclass
class ProposalResult:
    outcome: ProposalOutcome
    proposal: Optional[Proposal] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.outcome in _PROPOSAL_SUCCESS

    def to_document(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "success": bool(self),
            "message": self.message,
            "proposal": self.proposal.to_dict() if self.proposal else None,
        }


class SettingsOutcome(Enum):
    UPDATED = "updated"
    CLEARED = "cleared"
    UNAUTHORIZED = "unauthorized"
    TRIP_NOT_FOUND = "trip_not_found"
    BLOCK_NOT_FOUND = "block_not_found"
    INVALID = "invalid"


@dataclass
class SettingsResult:
    """Result of an organizer settings change (voting window, duplicate policy)."""

    outcome: SettingsOutcome
    block: Optional[Block] = None
    trip: Optional[Trip] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.outcome in (SettingsOutcome.UPDATED, SettingsOutcome.CLEARED)

    def to_document(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "success": bool(self),
            "message": self.message,
            "block": self.block.to_dict() if self.block else None,
            "trip": self.trip.to_dict() if self.trip else None,
        }
