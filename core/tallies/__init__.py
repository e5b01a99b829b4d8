"""
Tallies package.

Pure vote counting for blocks. Storage access lives with the vote ledger;
these helpers only see the vote rows they are handed.
"""

from .compute import compute_tally, summarize, top_candidates
from .models import TallyEntry, TallySummary

__all__ = [
    "TallyEntry",
    "TallySummary",
    "compute_tally",
    "summarize",
    "top_candidates",
]
