"""Organizer-only settings: block voting windows and the trip duplicate policy."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from core.voting.results import SettingsOutcome, SettingsResult
from services.permissions import TripPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.planner import PlannerStore

log = get_logger("core.voting.settings")


class TripSettings:
    def __init__(
        self,
        store: PlannerStore,
        permissions: Optional[TripPermissionResolver] = None,
    ):
        self._store = store
        self._permissions = permissions or TripPermissionResolver()

    def _authorize(self, trip_id: str, actor_member_id: str, action: str) -> Optional[SettingsResult]:
        actor = self._store.get_member_by_id(trip_id, actor_member_id)
        permission = self._permissions.require_organizer(actor, trip_id=trip_id, action=action)
        if not permission:
            return SettingsResult(SettingsOutcome.UNAUTHORIZED, message=permission.reason or "")
        return None

    def set_voting_window(
        self,
        trip_id: str,
        block_id: str,
        actor_member_id: str,
        open_ts: Optional[datetime | str],
        close_ts: Optional[datetime | str],
    ) -> SettingsResult:
        denied = self._authorize(trip_id, actor_member_id, "change voting windows")
        if denied:
            return denied

        block = self._store.get_block(block_id)
        if block is None or block.trip_id != trip_id:
            return SettingsResult(SettingsOutcome.BLOCK_NOT_FOUND, message="Block not found")

        try:
            updated = self._store.update_voting_window(block_id, open_ts, close_ts)
        except ValueError as exc:
            return SettingsResult(SettingsOutcome.INVALID, block=block, message=str(exc))

        log.info(
            f"[{trip_id}] voting window for block {block_id} set to "
            f"{updated.vote_open_ts} .. {updated.vote_close_ts}"
        )
        return SettingsResult(SettingsOutcome.UPDATED, block=updated, message="Voting window updated")

    def clear_voting_window(
        self,
        trip_id: str,
        block_id: str,
        actor_member_id: str,
    ) -> SettingsResult:
        denied = self._authorize(trip_id, actor_member_id, "change voting windows")
        if denied:
            return denied

        block = self._store.get_block(block_id)
        if block is None or block.trip_id != trip_id:
            return SettingsResult(SettingsOutcome.BLOCK_NOT_FOUND, message="Block not found")

        updated = self._store.update_voting_window(block_id, None, None)
        log.info(f"[{trip_id}] voting window for block {block_id} cleared")
        return SettingsResult(SettingsOutcome.CLEARED, block=updated, message="Voting window cleared")

    def set_duplicate_policy(
        self,
        trip_id: str,
        actor_member_id: str,
        policy: str,
    ) -> SettingsResult:
        if self._store.get_trip(trip_id) is None:
            return SettingsResult(SettingsOutcome.TRIP_NOT_FOUND, message="Trip not found")

        denied = self._authorize(trip_id, actor_member_id, "change the duplicate policy")
        if denied:
            return denied

        try:
            trip = self._store.update_duplicate_policy(trip_id, policy)
        except ValueError as exc:
            return SettingsResult(SettingsOutcome.INVALID, message=str(exc))

        log.info(f"[{trip_id}] duplicate policy set to {trip.duplicate_policy}")
        return SettingsResult(SettingsOutcome.UPDATED, trip=trip, message="Duplicate policy updated")
