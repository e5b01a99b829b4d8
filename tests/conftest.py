import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Loggers open their files at import time; keep them out of the repo
os.environ.setdefault(
    "TRIPBLOCKS_LOG_DIR",
    str(Path(tempfile.gettempdir()) / "tripblocks-test-logs"),
)

import pytest  # noqa: E402

from core.commitment import CommitmentResolver  # noqa: E402
from core.voting import ProposalRegistry, TripSettings, VoteLedger  # noqa: E402
from services.permissions import TripPermissionResolver  # noqa: E402
from shared.storage.planner import PlannerStore  # noqa: E402


@pytest.fixture
def store(tmp_path):
    return PlannerStore(tmp_path / "planner.db")


@pytest.fixture
def permissions():
    return TripPermissionResolver()


@pytest.fixture
def resolver(store, permissions):
    return CommitmentResolver(store, permissions)


@pytest.fixture
def ledger(store, permissions):
    return VoteLedger(store, permissions)


@pytest.fixture
def proposals(store, permissions):
    return ProposalRegistry(store, permissions)


@pytest.fixture
def settings(store, permissions):
    return TripSettings(store, permissions)


@pytest.fixture
def trip(store):
    """
    A soft_block trip with one organizer, two collaborators and three blocks
    (morning, afternoon, evening) on the same day.
    """
    created = store.create_trip("Lisbon long weekend", "soft_block")
    organizer = store.add_member(created.trip_id, "organizer", "Olga", user_id="user-olga")
    alice = store.add_member(created.trip_id, "collaborator", "Alice", user_id="user-alice")
    bob = store.add_member(created.trip_id, "collaborator", "Bob", user_id="user-bob")
    blocks = [
        store.create_block(created.trip_id, label, position, day="2026-11-06")
        for position, label in enumerate(("Morning", "Afternoon", "Evening"))
    ]
    return SimpleNamespace(
        trip=created,
        trip_id=created.trip_id,
        organizer=organizer,
        alice=alice,
        bob=bob,
        members=[organizer, alice, bob],
        blocks=blocks,
        x=blocks[0],
        y=blocks[1],
        z=blocks[2],
    )


@pytest.fixture
def vote(store, ledger, trip):
    """
    Propose ``activity_id`` in ``block`` (if needed) and cast a vote from each
    given member.
    """

    def _vote(block, activity_id, *members):
        if store.get_proposal(block.block_id, activity_id) is None:
            store.add_proposal(trip.trip_id, block.block_id, activity_id, trip.organizer.member_id)
        for member in members:
            result = ledger.cast_vote(trip.trip_id, block.block_id, activity_id, member.member_id)
            assert result, result.message

    return _vote
