"""SQLite persistence for trips, proposals, votes and commits."""

from .errors import (
    CommitConflict,
    DuplicateActivityConflict,
    MemberExists,
    ProposalExists,
    StoreError,
)
from .store import DEFAULT_DB_PATH, PlannerStore

__all__ = [
    "DEFAULT_DB_PATH",
    "PlannerStore",
    "StoreError",
    "CommitConflict",
    "DuplicateActivityConflict",
    "MemberExists",
    "ProposalExists",
]
