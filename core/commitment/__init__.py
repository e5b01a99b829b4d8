"""
Commitment package.

Resolves a block to its single committed activity, applying the trip's
duplicate policy and the post-commit proposal cleanup.
"""

from .cleanup import ConsistencyReactor, purge_duplicate_proposals
from .duplicates import DuplicatePolicyEvaluator, evaluate_duplicates
from .models import (
    CommitOutcome,
    CommitResult,
    DuplicateConflict,
    DuplicateDecision,
    DuplicateVerdict,
)
from .resolver import CommitmentResolver

__all__ = [
    "CommitmentResolver",
    "CommitOutcome",
    "CommitResult",
    "ConsistencyReactor",
    "DuplicateConflict",
    "DuplicateDecision",
    "DuplicatePolicyEvaluator",
    "DuplicateVerdict",
    "evaluate_duplicates",
    "purge_duplicate_proposals",
]
