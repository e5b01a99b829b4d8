"""Pure tally functions over a block's vote set."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from core.tallies.models import TallyEntry, TallySummary


def _vote_field(vote: Any, name: str) -> str:
    if isinstance(vote, dict):
        return str(vote[name])
    return str(getattr(vote, name))


def compute_tally(votes: Iterable[Any]) -> List[TallyEntry]:
    """
    Count votes per activity and sort by count, descending.

    ``votes`` may hold Vote rows or mappings carrying ``activity_id``. Ties
    keep first-seen order (sorted() is stable). No side effects; an empty
    vote set yields an empty tally.
    """
    counts: Dict[str, int] = {}
    for vote in votes:
        activity_id = _vote_field(vote, "activity_id")
        counts[activity_id] = counts.get(activity_id, 0) + 1

    entries = [TallyEntry(activity_id=a, vote_count=c) for a, c in counts.items()]
    return sorted(entries, key=lambda e: e.vote_count, reverse=True)


def top_candidates(tally: List[TallyEntry]) -> List[TallyEntry]:
    """Return every entry sharing the highest vote count."""
    if not tally:
        return []
    top = tally[0].vote_count
    return [entry for entry in tally if entry.vote_count == top]


def summarize(block_id: str, votes: Iterable[Any]) -> TallySummary:
    votes = list(votes)
    voters = {_vote_field(vote, "member_id") for vote in votes}
    return TallySummary(
        block_id=block_id,
        entries=compute_tally(votes),
        total_votes=len(votes),
        unique_voters=len(voters),
    )
