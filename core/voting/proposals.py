"""Proposal registry: which activities are up for a vote in which block."""

from __future__ import annotations

from typing import List, Optional

from core.voting.results import ProposalOutcome, ProposalResult
from services.permissions import TripPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.planner import PlannerStore, ProposalExists
from shared.trips.models import Proposal

log = get_logger("core.voting.proposals")


class ProposalRegistry:
    def __init__(
        self,
        store: PlannerStore,
        permissions: Optional[TripPermissionResolver] = None,
    ):
        self._store = store
        self._permissions = permissions or TripPermissionResolver()

    def _check(self, trip_id: str, block_id: str, member_id: str) -> Optional[ProposalResult]:
        block = self._store.get_block(block_id)
        if block is None or block.trip_id != trip_id:
            return ProposalResult(ProposalOutcome.BLOCK_NOT_FOUND, message="Block not found")

        member = self._store.get_member_by_id(trip_id, member_id)
        permission = self._permissions.require_member(member, trip_id=trip_id)
        if not permission:
            return ProposalResult(ProposalOutcome.NOT_A_MEMBER, message=permission.reason or "")
        return None

    def propose_activity(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        member_id: str,
    ) -> ProposalResult:
        failure = self._check(trip_id, block_id, member_id)
        if failure:
            return failure

        try:
            proposal = self._store.add_proposal(trip_id, block_id, activity_id, member_id)
        except ProposalExists:
            return ProposalResult(
                ProposalOutcome.ALREADY_PROPOSED,
                proposal=self._store.get_proposal(block_id, activity_id),
                message="Activity is already proposed for this block",
            )

        log.info(f"[{trip_id}] activity {activity_id} proposed for block {block_id}")
        return ProposalResult(ProposalOutcome.CREATED, proposal=proposal, message="Proposal created")

    def withdraw_proposal(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        member_id: str,
    ) -> ProposalResult:
        failure = self._check(trip_id, block_id, member_id)
        if failure:
            return failure

        if self._store.delete_proposal(block_id, activity_id):
            log.info(f"[{trip_id}] activity {activity_id} withdrawn from block {block_id}")
            return ProposalResult(ProposalOutcome.WITHDRAWN, message="Proposal withdrawn")
        return ProposalResult(ProposalOutcome.NOOP, message="No proposal to withdraw")

    def list_block_proposals(self, block_id: str) -> List[Proposal]:
        return self._store.list_block_proposals(block_id)

    def list_trip_proposals(self, trip_id: str) -> List[Proposal]:
        return self._store.list_trip_proposals(trip_id)

    def list_activity_proposals(self, trip_id: str, activity_id: str) -> List[Proposal]:
        return self._store.list_activity_proposals(trip_id, activity_id)
