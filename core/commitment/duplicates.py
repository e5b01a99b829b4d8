"""
Duplicate policy evaluation.

The trip's ``duplicate_policy`` decides what happens when the winning
activity is already committed in another block of the same trip:

- allow      : always proceed
- prevent    : blocked while the earlier commit stands, never bypassable
- soft_block : needs explicit confirmation, then proceeds

No existing duplicate means proceed under every policy.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from core.commitment.models import DuplicateConflict, DuplicateDecision, DuplicateVerdict
from shared.storage.planner import PlannerStore
from shared.trips.models import Block, Commit, normalize_policy


def evaluate_duplicates(
    policy: str,
    activity_id: str,
    block_id: str,
    commits: Iterable[Commit],
    *,
    confirm_duplicate: bool = False,
    blocks: Optional[Mapping[str, Block]] = None,
) -> DuplicateDecision:
    """
    Pure policy decision over the trip's existing commits.

    ``commits`` may include unrelated rows; only commits of ``activity_id``
    in blocks other than ``block_id`` count as conflicts. ``blocks`` supplies
    labels and days for the conflict list when available.
    """
    policy = normalize_policy(policy)
    blocks = blocks or {}

    conflicts: List[DuplicateConflict] = []
    for commit in commits:
        if commit.activity_id != activity_id or commit.block_id == block_id:
            continue
        block = blocks.get(commit.block_id)
        conflicts.append(
            DuplicateConflict(
                block_id=commit.block_id,
                commit_id=commit.commit_id,
                label=block.label if block else None,
                day=block.day if block else None,
                position=block.position if block else None,
            )
        )

    if policy == "allow" or not conflicts:
        return DuplicateDecision(DuplicateVerdict.PROCEED, policy, conflicts)

    if policy == "prevent":
        return DuplicateDecision(DuplicateVerdict.BLOCKED, policy, conflicts)

    if confirm_duplicate:
        return DuplicateDecision(DuplicateVerdict.PROCEED, policy, conflicts)
    return DuplicateDecision(DuplicateVerdict.NEEDS_CONFIRMATION, policy, conflicts)


class DuplicatePolicyEvaluator:
    """Loads the trip's commits for an activity and applies evaluate_duplicates."""

    def __init__(self, store: PlannerStore):
        self._store = store

    def describe_blocks(self, block_ids: Iterable[str]) -> dict:
        found = {}
        for block_id in block_ids:
            block = self._store.get_block(block_id)
            if block:
                found[block_id] = block
        return found

    def evaluate(
        self,
        policy: str,
        *,
        trip_id: str,
        block_id: str,
        activity_id: str,
        confirm_duplicate: bool = False,
    ) -> DuplicateDecision:
        commits = self._store.find_activity_commits(
            trip_id,
            activity_id,
            exclude_block_id=block_id,
        )
        return evaluate_duplicates(
            policy,
            activity_id,
            block_id,
            commits,
            confirm_duplicate=confirm_duplicate,
            blocks=self.describe_blocks(c.block_id for c in commits),
        )
