"""
Vote ledger: one row per (block, activity, member).

Casting is an upsert and removal is idempotent, so repeated or concurrent
calls collapse to the last state. Votes stay writable after a block is
committed and never alter the commit; hiding voting controls on committed
blocks is left to the front end.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from core.tallies import TallySummary, summarize
from core.voting.results import VoteOutcome, VoteResult
from services.permissions import TripPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.planner import PlannerStore
from shared.trips.models import Block, Member, Vote

log = get_logger("core.voting.ledger")


class VoteLedger:
    def __init__(
        self,
        store: PlannerStore,
        permissions: Optional[TripPermissionResolver] = None,
    ):
        self._store = store
        self._permissions = permissions or TripPermissionResolver()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_voter(
        self,
        trip_id: str,
        block_id: str,
        member_id: str,
        actor_member_id: Optional[str],
    ) -> Tuple[Optional[Block], Optional[Member], Optional[VoteResult]]:
        block = self._store.get_block(block_id)
        if block is None or block.trip_id != trip_id:
            return None, None, VoteResult(VoteOutcome.BLOCK_NOT_FOUND, message="Block not found")

        voter = self._store.get_member_by_id(trip_id, member_id)
        if voter is None:
            return block, None, VoteResult(
                VoteOutcome.NOT_A_MEMBER,
                message="Voter is not a member of this trip",
            )

        if actor_member_id and actor_member_id != member_id:
            actor = self._store.get_member_by_id(trip_id, actor_member_id)
            permission = self._permissions.can_vote_for(
                actor,
                trip_id=trip_id,
                voter_member_id=member_id,
            )
            if not permission:
                return block, voter, VoteResult(
                    VoteOutcome.UNAUTHORIZED,
                    message=permission.reason or "Not allowed",
                )

        return block, voter, None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cast_vote(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        member_id: str,
        *,
        actor_member_id: Optional[str] = None,
        client_mutation_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VoteResult:
        """
        Record ``member_id``'s vote for ``activity_id`` in ``block_id``.

        Fails when the block's voting window is defined and ``now`` falls
        outside it, or when the activity is not proposed for the block.
        """
        block, _, failure = self._resolve_voter(trip_id, block_id, member_id, actor_member_id)
        if failure:
            return failure

        state = block.voting_state(now)
        if state == "not_open":
            return VoteResult(
                VoteOutcome.VOTING_NOT_OPEN,
                message="Voting has not started yet for this block",
            )
        if state == "closed":
            return VoteResult(VoteOutcome.VOTING_CLOSED, message="Voting has ended for this block")

        if self._store.get_proposal(block_id, activity_id) is None:
            return VoteResult(
                VoteOutcome.PROPOSAL_NOT_FOUND,
                message="Proposal does not exist for this block and activity",
            )

        vote = self._store.upsert_vote(
            trip_id,
            block_id,
            activity_id,
            member_id,
            client_mutation_id=client_mutation_id,
        )
        log.debug(f"[{trip_id}] vote cast block={block_id} activity={activity_id} member={member_id}")
        return VoteResult(VoteOutcome.CAST, vote=vote, message="Vote recorded")

    def remove_vote(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        member_id: str,
        *,
        actor_member_id: Optional[str] = None,
    ) -> VoteResult:
        """Delete a vote if present. Absent votes are a successful no-op."""
        _, _, failure = self._resolve_voter(trip_id, block_id, member_id, actor_member_id)
        if failure:
            return failure

        if self._store.delete_vote(block_id, activity_id, member_id):
            log.debug(
                f"[{trip_id}] vote removed block={block_id} activity={activity_id} member={member_id}"
            )
            return VoteResult(VoteOutcome.REMOVED, message="Vote removed")
        return VoteResult(VoteOutcome.NOOP, message="No vote to remove")

    def list_votes(self, block_id: str) -> List[Vote]:
        return self._store.list_votes(block_id)

    def get_tally(self, block_id: str) -> TallySummary:
        return summarize(block_id, self._store.list_votes(block_id))
