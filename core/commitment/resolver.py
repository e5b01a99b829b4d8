"""
Commitment resolver.

Turns a block's votes (or an organizer's manual choice) into the block's
single Commit. The call is a resumable two-step protocol: a tie or an
unconfirmed soft_block duplicate returns a non-committing result, and the
caller re-invokes with ``manual_activity_id`` or ``confirm_duplicate=True``.

Either a Commit row is written or nothing is. Exclusivity is enforced twice:
a read before any work, and the unique ``block_id`` constraint at insert
time, which decides races between concurrent resolvers.
"""

from __future__ import annotations

from typing import List, Optional

from core.commitment.cleanup import ConsistencyReactor
from core.commitment.duplicates import DuplicatePolicyEvaluator
from core.commitment.models import (
    CommitOutcome,
    CommitResult,
    DuplicateConflict,
    DuplicateVerdict,
)
from core.tallies import compute_tally, top_candidates
from services.permissions import TripPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.planner import CommitConflict, DuplicateActivityConflict, PlannerStore
from shared.trips.models import Commit, normalize_policy

log = get_logger("core.commitment.resolver")


class CommitmentResolver:
    def __init__(
        self,
        store: PlannerStore,
        permissions: Optional[TripPermissionResolver] = None,
        *,
        evaluator: Optional[DuplicatePolicyEvaluator] = None,
        reactor: Optional[ConsistencyReactor] = None,
    ):
        self._store = store
        self._permissions = permissions or TripPermissionResolver()
        self._evaluator = evaluator or DuplicatePolicyEvaluator(store)
        self._reactor = reactor or ConsistencyReactor(store)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _refuse(self, trip_id: str, block_id: str, result: CommitResult) -> CommitResult:
        log.info(
            f"[{trip_id}] commit on block {block_id} not written: "
            f"{result.outcome.value} ({result.message})"
        )
        return result

    def _conflicts_for(self, block_ids: List[str]) -> List[DuplicateConflict]:
        blocks = self._evaluator.describe_blocks(block_ids)
        conflicts = []
        for block_id in block_ids:
            block = blocks.get(block_id)
            existing = self._store.get_commit(block_id)
            conflicts.append(
                DuplicateConflict(
                    block_id=block_id,
                    commit_id=existing.commit_id if existing else None,
                    label=block.label if block else None,
                    day=block.day if block else None,
                    position=block.position if block else None,
                )
            )
        return conflicts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve_commit(
        self,
        trip_id: str,
        block_id: str,
        actor_member_id: str,
        manual_activity_id: Optional[str] = None,
        confirm_duplicate: bool = False,
        *,
        duplicate_policy: Optional[str] = None,
        client_mutation_id: Optional[str] = None,
    ) -> CommitResult:
        """
        Resolve ``block_id`` to one activity and persist the Commit.

        ``duplicate_policy`` overrides the trip's stored policy; when omitted
        the trip row is read. Expected refusals come back as a CommitResult,
        never as an exception.
        """
        # 1. Authorization
        actor = self._store.get_member_by_id(trip_id, actor_member_id)
        permission = self._permissions.require_organizer(
            actor,
            trip_id=trip_id,
            action="commit blocks",
        )
        if not permission:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(CommitOutcome.UNAUTHORIZED, message=permission.reason or "Not allowed"),
            )

        if duplicate_policy is None:
            trip = self._store.get_trip(trip_id)
            if trip is None:
                return self._refuse(
                    trip_id,
                    block_id,
                    CommitResult(CommitOutcome.TRIP_NOT_FOUND, message="Trip not found"),
                )
            duplicate_policy = trip.duplicate_policy
        policy = normalize_policy(duplicate_policy)

        block = self._store.get_block(block_id)
        if block is None or block.trip_id != trip_id:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(CommitOutcome.BLOCK_NOT_FOUND, policy=policy, message="Block not found"),
            )

        # 2. Exclusivity
        existing = self._store.get_commit(block_id)
        if existing is not None:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(
                    CommitOutcome.ALREADY_COMMITTED,
                    commit=existing,
                    policy=policy,
                    message="Block is already committed",
                ),
            )

        # 3. Tally
        tally = compute_tally(self._store.list_votes(block_id))

        # 4. Winner
        if manual_activity_id:
            winner = manual_activity_id
        else:
            if not tally:
                return self._refuse(
                    trip_id,
                    block_id,
                    CommitResult(
                        CommitOutcome.NO_VOTES,
                        policy=policy,
                        message="No votes yet; pick an activity manually",
                    ),
                )
            candidates = top_candidates(tally)
            if len(candidates) > 1:
                return self._refuse(
                    trip_id,
                    block_id,
                    CommitResult(
                        CommitOutcome.TIE_DETECTED,
                        tally=tally,
                        tied=candidates,
                        policy=policy,
                        message="Tie between top activities; choose one manually",
                    ),
                )
            winner = candidates[0].activity_id

        # 5. Duplicate policy
        decision = self._evaluator.evaluate(
            policy,
            trip_id=trip_id,
            block_id=block_id,
            activity_id=winner,
            confirm_duplicate=confirm_duplicate,
        )
        if decision.verdict == DuplicateVerdict.BLOCKED:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(
                    CommitOutcome.DUPLICATE_BLOCKED,
                    tally=tally,
                    conflicts=decision.conflicts,
                    policy=policy,
                    message="Activity is already committed elsewhere in this trip",
                ),
            )
        if decision.verdict == DuplicateVerdict.NEEDS_CONFIRMATION:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(
                    CommitOutcome.NEEDS_CONFIRMATION,
                    tally=tally,
                    conflicts=decision.conflicts,
                    policy=policy,
                    message="Activity is already committed elsewhere; confirm to duplicate it",
                ),
            )

        # 6. Persist; the trip is re-checked in the insert transaction unless
        # duplicates are allowed outright
        exclusive = policy == "prevent" or (policy == "soft_block" and not confirm_duplicate)
        try:
            commit: Commit = self._store.insert_commit(
                trip_id,
                block_id,
                winner,
                actor_member_id,
                exclusive_activity=exclusive,
                client_mutation_id=client_mutation_id,
            )
        except CommitConflict:
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(
                    CommitOutcome.STORAGE_CONFLICT,
                    commit=self._store.get_commit(block_id),
                    tally=tally,
                    policy=policy,
                    message="Block was committed by another request",
                ),
            )
        except DuplicateActivityConflict as exc:
            conflicts = self._conflicts_for(exc.block_ids)
            if policy == "soft_block":
                return self._refuse(
                    trip_id,
                    block_id,
                    CommitResult(
                        CommitOutcome.NEEDS_CONFIRMATION,
                        tally=tally,
                        conflicts=conflicts,
                        policy=policy,
                        message="Activity is already committed elsewhere; confirm to duplicate it",
                    ),
                )
            return self._refuse(
                trip_id,
                block_id,
                CommitResult(
                    CommitOutcome.DUPLICATE_BLOCKED,
                    tally=tally,
                    conflicts=conflicts,
                    policy=policy,
                    message="Activity is already committed elsewhere in this trip",
                ),
            )

        log.info(
            f"[{trip_id}] block {block_id} committed to activity {winner} "
            f"by {actor_member_id} (policy={policy})"
        )

        result = CommitResult(
            CommitOutcome.SUCCESS,
            commit=commit,
            tally=tally,
            conflicts=decision.conflicts,
            policy=policy,
            message="Block committed",
        )

        # 7. Post-commit cleanup; the commit stands even if this fails
        try:
            result.purged_proposals = self._reactor.on_commit(commit, policy)
        except Exception as exc:
            log.warning(
                f"[{trip_id}] proposal cleanup after commit {commit.commit_id} failed: {exc}"
            )
            result.cleanup_error = str(exc)

        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_commit(self, block_id: str) -> Optional[Commit]:
        return self._store.get_commit(block_id)

    def list_commits(self, trip_id: str) -> List[Commit]:
        return self._store.list_commits(trip_id)
