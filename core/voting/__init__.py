"""
Voting package.

Vote ledger, proposal registry and organizer settings. Every operation
returns a structured result; nothing here raises for an expected refusal.
"""

from .ledger import VoteLedger
from .proposals import ProposalRegistry
from .results import (
    ProposalOutcome,
    ProposalResult,
    SettingsOutcome,
    SettingsResult,
    VoteOutcome,
    VoteResult,
)
from .settings import TripSettings

__all__ = [
    "VoteLedger",
    "ProposalRegistry",
    "TripSettings",
    "VoteOutcome",
    "VoteResult",
    "ProposalOutcome",
    "ProposalResult",
    "SettingsOutcome",
    "SettingsResult",
]
