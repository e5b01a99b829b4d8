"""
Post-commit consistency reactor.

After a soft_block commit the activity is pinned to one block, so its
proposals everywhere else in the trip are removed and cannot be voted back
in. Under ``allow`` the other proposals stay; under ``prevent`` a duplicate
commit never happens, so there is nothing to clean.
"""

from __future__ import annotations

from shared.logging.logger import get_logger
from shared.storage.planner import PlannerStore
from shared.trips.models import Commit

log = get_logger("core.commitment.cleanup")


def purge_duplicate_proposals(
    store: PlannerStore,
    trip_id: str,
    activity_id: str,
    committed_block_id: str,
) -> int:
    """
    Delete ``activity_id``'s proposals from every block of the trip except
    ``committed_block_id``. Returns the number of proposals removed.
    """
    removed = store.purge_activity_proposals(
        trip_id,
        activity_id,
        keep_block_id=committed_block_id,
    )
    if removed:
        log.info(
            f"[{trip_id}] purged {removed} proposal(s) of activity {activity_id} "
            f"outside block {committed_block_id}"
        )
    return removed


class ConsistencyReactor:
    def __init__(self, store: PlannerStore):
        self._store = store

    def on_commit(self, commit: Commit, policy: str) -> int:
        if policy != "soft_block":
            return 0
        return purge_duplicate_proposals(
            self._store,
            commit.trip_id,
            commit.activity_id,
            commit.block_id,
        )
