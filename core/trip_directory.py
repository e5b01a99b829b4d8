"""
Trip directory: trips, their members and their blocks.

The creator of a trip joins it as its first organizer. Adding members and
blocks is organizer-only. New trips take the configured default duplicate
policy unless the creator names one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from services.permissions import TripPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.planner import MemberExists, PlannerStore
from shared.trips.models import Block, Member, Trip, normalize_policy

log = get_logger("core.trip_directory")


class DirectoryOutcome(Enum):
    CREATED = "created"
    ALREADY_MEMBER = "already_member"
    UNAUTHORIZED = "unauthorized"
    TRIP_NOT_FOUND = "trip_not_found"
    INVALID = "invalid"


@dataclass
class DirectoryResult:
    outcome: DirectoryOutcome
    trip: Optional[Trip] = None
    member: Optional[Member] = None
    block: Optional[Block] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.outcome == DirectoryOutcome.CREATED

    def to_document(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "success": bool(self),
            "message": self.message,
            "trip": self.trip.to_dict() if self.trip else None,
            "member": self.member.to_dict() if self.member else None,
            "block": self.block.to_dict() if self.block else None,
        }


@dataclass
class TripOverview:
    trip: Trip
    members: List[Member] = field(default_factory=list)
    blocks: List[Block] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return {
            "trip": self.trip.to_dict(),
            "members": [m.to_dict() for m in self.members],
            "blocks": [b.to_dict() for b in self.blocks],
        }


class TripDirectory:
    def __init__(
        self,
        store: PlannerStore,
        permissions: Optional[TripPermissionResolver] = None,
        *,
        default_duplicate_policy: str = "soft_block",
    ):
        self._store = store
        self._permissions = permissions or TripPermissionResolver()
        self._default_policy = normalize_policy(default_duplicate_policy)

    def create_trip(
        self,
        name: str,
        creator_user_id: str,
        creator_display_name: str,
        duplicate_policy: Optional[str] = None,
    ) -> DirectoryResult:
        if not name:
            return DirectoryResult(DirectoryOutcome.INVALID, message="Trip name is required")
        try:
            policy = normalize_policy(duplicate_policy or self._default_policy)
        except ValueError as exc:
            return DirectoryResult(DirectoryOutcome.INVALID, message=str(exc))

        trip = self._store.create_trip(name, policy)
        organizer = self._store.add_member(
            trip.trip_id,
            "organizer",
            creator_display_name,
            user_id=creator_user_id,
        )
        log.info(f"[{trip.trip_id}] trip '{name}' created by {creator_user_id} (policy={policy})")
        return DirectoryResult(
            DirectoryOutcome.CREATED,
            trip=trip,
            member=organizer,
            message="Trip created",
        )

    def add_member(
        self,
        trip_id: str,
        actor_member_id: str,
        user_id: str,
        display_name: str,
        role: str = "collaborator",
    ) -> DirectoryResult:
        trip = self._store.get_trip(trip_id)
        if trip is None:
            return DirectoryResult(DirectoryOutcome.TRIP_NOT_FOUND, message="Trip not found")

        actor = self._store.get_member_by_id(trip_id, actor_member_id)
        permission = self._permissions.require_organizer(actor, trip_id=trip_id, action="add members")
        if not permission:
            return DirectoryResult(DirectoryOutcome.UNAUTHORIZED, message=permission.reason or "")

        try:
            member = self._store.add_member(trip_id, role, display_name, user_id=user_id)
        except MemberExists:
            return DirectoryResult(
                DirectoryOutcome.ALREADY_MEMBER,
                trip=trip,
                member=self._store.get_member(trip_id, user_id),
                message="User is already a member of this trip",
            )
        except ValueError as exc:
            return DirectoryResult(DirectoryOutcome.INVALID, message=str(exc))

        log.info(f"[{trip_id}] member {member.member_id} joined as {member.role}")
        return DirectoryResult(DirectoryOutcome.CREATED, trip=trip, member=member, message="Member added")

    def create_block(
        self,
        trip_id: str,
        actor_member_id: str,
        label: str,
        position: int,
        *,
        day: Optional[str] = None,
        vote_open_ts: Optional[str] = None,
        vote_close_ts: Optional[str] = None,
    ) -> DirectoryResult:
        trip = self._store.get_trip(trip_id)
        if trip is None:
            return DirectoryResult(DirectoryOutcome.TRIP_NOT_FOUND, message="Trip not found")

        actor = self._store.get_member_by_id(trip_id, actor_member_id)
        permission = self._permissions.require_organizer(actor, trip_id=trip_id, action="add blocks")
        if not permission:
            return DirectoryResult(DirectoryOutcome.UNAUTHORIZED, message=permission.reason or "")

        try:
            block = self._store.create_block(
                trip_id,
                label,
                int(position),
                day=day,
                vote_open_ts=vote_open_ts,
                vote_close_ts=vote_close_ts,
            )
        except (TypeError, ValueError) as exc:
            return DirectoryResult(DirectoryOutcome.INVALID, message=str(exc))

        log.info(f"[{trip_id}] block {block.block_id} '{label}' added at position {block.position}")
        return DirectoryResult(DirectoryOutcome.CREATED, trip=trip, block=block, message="Block added")

    def get_overview(self, trip_id: str) -> Optional[TripOverview]:
        trip = self._store.get_trip(trip_id)
        if trip is None:
            return None
        return TripOverview(
            trip=trip,
            members=self._store.list_members(trip_id),
            blocks=self._store.list_blocks(trip_id),
        )
