"""
Trip permission checks.

Centralizes role rules so the engine modules stay declarative:
- Only organizers may commit blocks, change voting windows, or change the
  trip's duplicate policy
- Any member may propose activities and cast their own votes
- Organizers may vote on behalf of another member when proxy voting is on

IMPORTANT CONSTRAINTS:
- This module MUST NOT touch storage
- Member rows are looked up by the caller and passed in
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from shared.logging.logger import get_logger
from shared.trips.models import Member

log = get_logger("services.permissions")


class PermissionResult:
    """
    Structured permission check result.

    Lets the engine and the HTTP layer handle refusals consistently without
    duplicating messaging or logic.
    """

    def __init__(
        self,
        allowed: bool,
        *,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.allowed = allowed
        self.reason = reason
        self.metadata = metadata or {}

    def __bool__(self) -> bool:
        return self.allowed


class TripPermissionResolver:
    """
    Central permission resolver for trip operations.

    Makes no storage calls and has no side effects beyond logging.
    """

    def __init__(self, *, allow_proxy_votes: bool = True):
        self._allow_proxy_votes = allow_proxy_votes

    @property
    def allow_proxy_votes(self) -> bool:
        return self._allow_proxy_votes

    # --------------------------------------------------
    # Core Permission Checks
    # --------------------------------------------------

    def require_member(self, member: Optional[Member], *, trip_id: str) -> PermissionResult:
        if member is None or member.trip_id != trip_id:
            log.debug(f"Refused non-member for trip {trip_id}")
            return PermissionResult(False, reason="Not a member of this trip")
        return PermissionResult(True, metadata={"member_id": member.member_id, "role": member.role})

    def require_organizer(
        self,
        member: Optional[Member],
        *,
        trip_id: str,
        action: str,
    ) -> PermissionResult:
        """
        Organizer-only gate. ``action`` is used for logging and messaging.
        """
        membership = self.require_member(member, trip_id=trip_id)
        if not membership:
            return PermissionResult(
                False,
                reason=f"Only trip organizers can {action}",
                metadata={"action": action},
            )

        if not member.is_organizer:
            log.info(f"Member {member.member_id} refused '{action}' (role={member.role})")
            return PermissionResult(
                False,
                reason=f"Only trip organizers can {action}",
                metadata={"action": action, "role": member.role},
            )

        return PermissionResult(True, metadata={"action": action, "member_id": member.member_id})

    def can_vote_for(
        self,
        actor: Optional[Member],
        *,
        trip_id: str,
        voter_member_id: str,
    ) -> PermissionResult:
        """
        Decide whether ``actor`` may cast or remove ``voter_member_id``'s vote.
        """
        membership = self.require_member(actor, trip_id=trip_id)
        if not membership:
            return membership

        if actor.member_id == voter_member_id:
            return PermissionResult(True, metadata={"mode": "self"})

        if not self._allow_proxy_votes:
            return PermissionResult(False, reason="Voting on behalf of others is disabled")

        if not actor.is_organizer:
            return PermissionResult(False, reason="Only organizers can vote on behalf of others")

        return PermissionResult(True, metadata={"mode": "proxy"})
