"""Storage-level exceptions raised by the planner store."""

from __future__ import annotations

from typing import List, Optional


class StoreError(RuntimeError):
    """Base class for planner storage failures."""


class CommitConflict(StoreError):
    """
    The block already holds a commit at insert time.

    Raised from the insert itself (unique ``block_id``), so a writer that
    passed an earlier read-side check still observes the loss.
    """

    def __init__(self, block_id: str, existing_activity_id: Optional[str] = None):
        super().__init__(f"Block {block_id} already has a commit")
        self.block_id = block_id
        self.existing_activity_id = existing_activity_id


class DuplicateActivityConflict(StoreError):
    """The activity was committed elsewhere in the trip before this write."""

    def __init__(self, activity_id: str, block_ids: List[str]):
        super().__init__(
            f"Activity {activity_id} already committed in block(s) {', '.join(block_ids)}"
        )
        self.activity_id = activity_id
        self.block_ids = list(block_ids)


class ProposalExists(StoreError):
    def __init__(self, block_id: str, activity_id: str):
        super().__init__(f"Activity {activity_id} is already proposed for block {block_id}")
        self.block_id = block_id
        self.activity_id = activity_id


class MemberExists(StoreError):
    def __init__(self, trip_id: str, user_id: str):
        super().__init__(f"User {user_id} is already a member of trip {trip_id}")
        self.trip_id = trip_id
        self.user_id = user_id
