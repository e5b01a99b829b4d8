import threading
from datetime import datetime, timezone

from core.voting import VoteLedger, VoteOutcome
from services.permissions import TripPermissionResolver

WINDOW_OPEN = "2026-11-01T09:00:00Z"
WINDOW_CLOSE = "2026-11-01T18:00:00Z"


def _at(hour: int) -> datetime:
    return datetime(2026, 11, 1, hour, 0, tzinfo=timezone.utc)


def test_cast_vote_records_one_row(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    assert result.outcome == VoteOutcome.CAST
    assert result.vote.member_id == trip.alice.member_id
    assert [v.activity_id for v in ledger.list_votes(trip.x.block_id)] == ["museum"]


def test_casting_same_vote_twice_keeps_single_row(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    first = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)
    second = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    assert first and second
    assert first.vote.vote_id == second.vote.vote_id
    assert len(ledger.list_votes(trip.x.block_id)) == 1


def test_concurrent_casts_collapse_to_one_vote(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)
    barrier = threading.Barrier(6)
    results = []

    def worker():
        barrier.wait()
        results.append(
            ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)
        )

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(r.outcome == VoteOutcome.CAST for r in results)
    assert len(ledger.list_votes(trip.x.block_id)) == 1


def test_member_may_vote_for_several_activities_in_a_block(store, ledger, trip, vote):
    vote(trip.x, "museum", trip.alice)
    vote(trip.x, "beach", trip.alice)

    tally = ledger.get_tally(trip.x.block_id)

    assert tally.total_votes == 2
    assert tally.unique_voters == 1


def test_remove_missing_vote_is_successful_noop(ledger, trip):
    result = ledger.remove_vote(trip.trip_id, trip.x.block_id, "museum", trip.bob.member_id)

    assert result
    assert result.outcome == VoteOutcome.NOOP


def test_remove_existing_vote(ledger, trip, vote):
    vote(trip.x, "museum", trip.bob)

    result = ledger.remove_vote(trip.trip_id, trip.x.block_id, "museum", trip.bob.member_id)

    assert result.outcome == VoteOutcome.REMOVED
    assert ledger.list_votes(trip.x.block_id) == []


def test_vote_requires_existing_proposal(ledger, trip):
    result = ledger.cast_vote(trip.trip_id, trip.x.block_id, "ghost", trip.alice.member_id)

    assert not result
    assert result.outcome == VoteOutcome.PROPOSAL_NOT_FOUND


def test_vote_requires_trip_membership(store, ledger, trip):
    other = store.create_trip("Porto", "allow")
    stranger = store.add_member(other.trip_id, "organizer", "Sam", user_id="user-sam")
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", stranger.member_id)

    assert result.outcome == VoteOutcome.NOT_A_MEMBER


def test_block_of_another_trip_is_not_found(store, ledger, trip):
    other = store.create_trip("Porto", "allow")
    foreign_block = store.create_block(other.trip_id, "Lunch", 0)

    result = ledger.cast_vote(trip.trip_id, foreign_block.block_id, "museum", trip.alice.member_id)

    assert result.outcome == VoteOutcome.BLOCK_NOT_FOUND


def test_voting_window_is_enforced(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)
    store.update_voting_window(trip.x.block_id, WINDOW_OPEN, WINDOW_CLOSE)

    early = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id, now=_at(8))
    inside = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id, now=_at(12))
    late = ledger.cast_vote(trip.trip_id, trip.x.block_id, "museum", trip.bob.member_id, now=_at(19))

    assert early.outcome == VoteOutcome.VOTING_NOT_OPEN
    assert inside.outcome == VoteOutcome.CAST
    assert late.outcome == VoteOutcome.VOTING_CLOSED
    assert len(ledger.list_votes(trip.x.block_id)) == 1


def test_block_without_window_is_always_open(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(
        trip.trip_id,
        trip.x.block_id,
        "museum",
        trip.alice.member_id,
        now=datetime(1999, 1, 1, tzinfo=timezone.utc),
    )

    assert result.outcome == VoteOutcome.CAST


def test_remove_vote_ignores_closed_window(store, ledger, trip, vote):
    vote(trip.x, "museum", trip.alice)
    store.update_voting_window(trip.x.block_id, WINDOW_OPEN, WINDOW_CLOSE)

    result = ledger.remove_vote(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    assert result.outcome == VoteOutcome.REMOVED


def test_organizer_may_vote_on_behalf_of_member(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(
        trip.trip_id,
        trip.x.block_id,
        "museum",
        trip.bob.member_id,
        actor_member_id=trip.organizer.member_id,
    )

    assert result.outcome == VoteOutcome.CAST
    assert result.vote.member_id == trip.bob.member_id


def test_collaborator_cannot_vote_on_behalf_of_member(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(
        trip.trip_id,
        trip.x.block_id,
        "museum",
        trip.bob.member_id,
        actor_member_id=trip.alice.member_id,
    )

    assert result.outcome == VoteOutcome.UNAUTHORIZED
    assert ledger.list_votes(trip.x.block_id) == []


def test_proxy_votes_can_be_disabled(store, trip):
    ledger = VoteLedger(store, TripPermissionResolver(allow_proxy_votes=False))
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(
        trip.trip_id,
        trip.x.block_id,
        "museum",
        trip.bob.member_id,
        actor_member_id=trip.organizer.member_id,
    )

    assert result.outcome == VoteOutcome.UNAUTHORIZED
    assert "disabled" in result.message


def test_voting_after_commit_does_not_touch_commit(store, ledger, resolver, trip, vote):
    vote(trip.x, "museum", trip.alice)
    committed = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)
    assert committed

    store.add_proposal(trip.trip_id, trip.x.block_id, "beach", trip.bob.member_id)
    late = ledger.cast_vote(trip.trip_id, trip.x.block_id, "beach", trip.bob.member_id)

    assert late.outcome == VoteOutcome.CAST
    assert store.get_commit(trip.x.block_id).activity_id == "museum"


def test_client_mutation_id_is_recorded(store, ledger, trip):
    store.add_proposal(trip.trip_id, trip.x.block_id, "museum", trip.alice.member_id)

    result = ledger.cast_vote(
        trip.trip_id,
        trip.x.block_id,
        "museum",
        trip.alice.member_id,
        client_mutation_id="tmp-123",
    )

    assert result.vote.client_mutation_id == "tmp-123"
    assert ledger.list_votes(trip.x.block_id)[0].client_mutation_id == "tmp-123"


def test_get_tally_is_sorted(ledger, trip, vote):
    vote(trip.x, "museum", trip.alice)
    vote(trip.x, "beach", trip.alice, trip.bob, trip.organizer)

    summary = ledger.get_tally(trip.x.block_id)

    assert [(e.activity_id, e.vote_count) for e in summary.entries] == [("beach", 3), ("museum", 1)]
    assert summary.total_votes == 4
    assert summary.unique_voters == 3
