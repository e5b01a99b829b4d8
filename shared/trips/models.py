"""Canonical trip planning entities and helpers.

These dataclasses are the rows the storage adapter hands to the engine. They
carry no behaviour beyond small derived properties and serialization.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

TRIP_ROLES = ("organizer", "collaborator")

DUPLICATE_POLICIES = ("allow", "soft_block", "prevent")


def new_id() -> str:
    return uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_iso(ts: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. Raises ValueError on garbage.
    """
    if not isinstance(ts, str) or not ts.strip():
        raise ValueError(f"Invalid timestamp: {ts!r}")
    value = ts.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Optional[datetime | str]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_iso(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_policy(value: str) -> str:
    policy = (value or "").lower().strip()
    if policy not in DUPLICATE_POLICIES:
        raise ValueError(f"Unsupported duplicate_policy: {value}")
    return policy


def normalize_role(value: str) -> str:
    role = (value or "").lower().strip()
    if role not in TRIP_ROLES:
        raise ValueError(f"Unsupported trip role: {value}")
    return role


@dataclass
class Trip:
    trip_id: str
    name: str
    duplicate_policy: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Member:
    member_id: str
    trip_id: str
    role: str
    display_name: str
    user_id: Optional[str] = None
    joined_at: Optional[str] = None

    @property
    def is_organizer(self) -> bool:
        return self.role == "organizer"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Block:
    block_id: str
    trip_id: str
    label: str
    position: int
    day: Optional[str] = None
    vote_open_ts: Optional[str] = None
    vote_close_ts: Optional[str] = None

    def voting_state(self, now: Optional[datetime] = None) -> str:
        """
        Return ``open``, ``not_open`` or ``closed`` for the voting window.

        Blocks without a window are always open.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if self.vote_open_ts and now < parse_iso(self.vote_open_ts):
            return "not_open"
        if self.vote_close_ts and now > parse_iso(self.vote_close_ts):
            return "closed"
        return "open"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Proposal:
    proposal_id: str
    trip_id: str
    block_id: str
    activity_id: str
    created_by: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Vote:
    vote_id: str
    trip_id: str
    block_id: str
    activity_id: str
    member_id: str
    created_at: str
    updated_at: str
    client_mutation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Commit:
    """
    Durable resolution of a block to one activity. Never updated in place.
    """

    commit_id: str
    trip_id: str
    block_id: str
    activity_id: str
    committed_by: str
    committed_at: str
    client_mutation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
