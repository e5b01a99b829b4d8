import threading

import pytest

from core.commitment import (
    CommitmentResolver,
    CommitOutcome,
    DuplicateDecision,
    DuplicatePolicyEvaluator,
    DuplicateVerdict,
)
from shared.storage.planner import CommitConflict


def _tied_block(trip, vote):
    # A: 3 votes, C: 3 votes
    vote(trip.x, "A", *trip.members)
    vote(trip.x, "C", *trip.members)


# ----------------------------------------------------------------------
# Scenarios
# ----------------------------------------------------------------------


def test_tie_returns_candidates_without_committing(store, resolver, trip, vote):
    _tied_block(trip, vote)

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.TIE_DETECTED
    assert not result
    assert result.needs_input
    assert [(e.activity_id, e.vote_count) for e in result.tied] == [("A", 3), ("C", 3)]
    assert [(e.activity_id, e.vote_count) for e in result.tally] == [("A", 3), ("C", 3)]
    assert store.get_commit(trip.x.block_id) is None


def test_manual_choice_resolves_tie_then_block_is_exclusive(store, resolver, trip, vote):
    _tied_block(trip, vote)

    result = resolver.resolve_commit(
        trip.trip_id,
        trip.x.block_id,
        trip.organizer.member_id,
        manual_activity_id="A",
    )
    again = resolver.resolve_commit(
        trip.trip_id,
        trip.x.block_id,
        trip.organizer.member_id,
        manual_activity_id="C",
    )

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.commit.activity_id == "A"
    assert result.commit.committed_by == trip.organizer.member_id
    assert result.policy == "soft_block"
    assert again.outcome == CommitOutcome.ALREADY_COMMITTED
    assert again.is_already_committed
    assert again.commit.activity_id == "A"
    assert store.get_commit(trip.x.block_id).activity_id == "A"


def test_prevent_blocks_duplicate_and_lists_conflict(store, resolver, trip, vote):
    store.update_duplicate_policy(trip.trip_id, "prevent")
    vote(trip.x, "A", trip.alice)
    assert resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)
    vote(trip.y, "A", trip.alice, trip.bob)

    result = resolver.resolve_commit(
        trip.trip_id,
        trip.y.block_id,
        trip.organizer.member_id,
        confirm_duplicate=True,
    )

    assert result.outcome == CommitOutcome.DUPLICATE_BLOCKED
    assert [c.block_id for c in result.conflicts] == [trip.x.block_id]
    assert result.conflicts[0].label == "Morning"
    assert store.get_commit(trip.y.block_id) is None


def test_soft_block_needs_confirmation_then_purges_other_proposals(store, resolver, trip, vote):
    vote(trip.x, "A", trip.alice)
    assert resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)
    vote(trip.y, "A", trip.bob)
    vote(trip.z, "A")

    pending = resolver.resolve_commit(trip.trip_id, trip.y.block_id, trip.organizer.member_id)

    assert pending.outcome == CommitOutcome.NEEDS_CONFIRMATION
    assert [c.block_id for c in pending.conflicts] == [trip.x.block_id]
    assert store.get_commit(trip.y.block_id) is None

    confirmed = resolver.resolve_commit(
        trip.trip_id,
        trip.y.block_id,
        trip.organizer.member_id,
        confirm_duplicate=True,
    )

    assert confirmed.outcome == CommitOutcome.SUCCESS
    assert confirmed.commit.activity_id == "A"
    assert confirmed.purged_proposals == 2
    remaining = store.list_activity_proposals(trip.trip_id, "A")
    assert [p.block_id for p in remaining] == [trip.y.block_id]


def test_non_organizer_is_unauthorized(store, resolver, trip, vote):
    vote(trip.x, "A", trip.alice)

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.alice.member_id)

    assert result.outcome == CommitOutcome.UNAUTHORIZED
    assert "organizers" in result.message
    assert store.get_commit(trip.x.block_id) is None
    assert len(store.list_block_proposals(trip.x.block_id)) == 1


def test_zero_votes_without_manual_choice(store, resolver, trip):
    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.NO_VOTES
    assert store.get_commit(trip.x.block_id) is None


# ----------------------------------------------------------------------
# Winner selection
# ----------------------------------------------------------------------


def test_clear_winner_commits_automatically(resolver, trip, vote):
    vote(trip.x, "A", trip.alice, trip.bob)
    vote(trip.x, "C", trip.organizer)

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.commit.activity_id == "A"
    assert [e.activity_id for e in result.tally] == ["A", "C"]


def test_manual_override_with_zero_votes(resolver, trip):
    result = resolver.resolve_commit(
        trip.trip_id,
        trip.x.block_id,
        trip.organizer.member_id,
        manual_activity_id="sunset-cruise",
    )

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.commit.activity_id == "sunset-cruise"
    assert result.tally == []


def test_manual_override_beats_vote_leader(resolver, trip, vote):
    vote(trip.x, "A", *trip.members)

    result = resolver.resolve_commit(
        trip.trip_id,
        trip.x.block_id,
        trip.organizer.member_id,
        manual_activity_id="C",
    )

    assert result.commit.activity_id == "C"


# ----------------------------------------------------------------------
# Policies
# ----------------------------------------------------------------------


def test_allow_permits_duplicates_and_keeps_proposals(store, resolver, trip, vote):
    store.update_duplicate_policy(trip.trip_id, "allow")
    vote(trip.x, "A", trip.alice)
    vote(trip.y, "A", trip.bob)
    vote(trip.z, "A")
    assert resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    result = resolver.resolve_commit(trip.trip_id, trip.y.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.purged_proposals == 0
    assert len(store.list_activity_proposals(trip.trip_id, "A")) == 3


def test_first_soft_block_commit_purges_nothing_elsewhere_to_confirm(store, resolver, trip, vote):
    vote(trip.x, "A", trip.alice)
    vote(trip.y, "A")

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.purged_proposals == 1
    assert [p.block_id for p in store.list_activity_proposals(trip.trip_id, "A")] == [
        trip.x.block_id
    ]


def test_explicit_policy_overrides_stored_policy(store, resolver, trip, vote):
    vote(trip.x, "A", trip.alice)
    assert resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)
    vote(trip.y, "A", trip.alice)

    result = resolver.resolve_commit(
        trip.trip_id,
        trip.y.block_id,
        trip.organizer.member_id,
        duplicate_policy="allow",
    )

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.policy == "allow"


def test_cleanup_failure_does_not_undo_commit(store, resolver, trip, vote, monkeypatch):
    vote(trip.x, "A", trip.alice)
    vote(trip.y, "A")

    def broken(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "purge_activity_proposals", broken)

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.SUCCESS
    assert result.cleanup_error == "disk on fire"
    assert store.get_commit(trip.x.block_id).activity_id == "A"


# ----------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------


def test_unknown_block(resolver, trip):
    result = resolver.resolve_commit(trip.trip_id, "missing", trip.organizer.member_id)

    assert result.outcome == CommitOutcome.BLOCK_NOT_FOUND


def test_block_from_another_trip(store, resolver, trip):
    other = store.create_trip("Porto", "allow")
    foreign = store.create_block(other.trip_id, "Lunch", 0)

    result = resolver.resolve_commit(
        trip.trip_id,
        foreign.block_id,
        trip.organizer.member_id,
        manual_activity_id="A",
    )

    assert result.outcome == CommitOutcome.BLOCK_NOT_FOUND
    assert store.get_commit(foreign.block_id) is None


def test_unknown_trip_fails_authorization(resolver, trip):
    result = resolver.resolve_commit("missing", trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.UNAUTHORIZED


def test_commit_reads(resolver, trip, vote):
    vote(trip.x, "A", trip.alice)
    resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)
    resolver.resolve_commit(
        trip.trip_id,
        trip.y.block_id,
        trip.organizer.member_id,
        manual_activity_id="B",
        client_mutation_id="mut-1",
    )

    assert resolver.get_commit(trip.x.block_id).activity_id == "A"
    assert resolver.get_commit(trip.z.block_id) is None
    commits = resolver.list_commits(trip.trip_id)
    assert [c.activity_id for c in commits] == ["B", "A"]
    assert commits[0].client_mutation_id == "mut-1"


def test_result_document_shape(resolver, trip, vote):
    _tied_block(trip, vote)

    doc = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id).to_document()

    assert doc["outcome"] == "tie_detected"
    assert doc["success"] is False
    assert doc["commit"] is None
    assert doc["tied_activities"] == [
        {"activity_id": "A", "vote_count": 3},
        {"activity_id": "C", "vote_count": 3},
    ]
    assert doc["duplicate_policy"] == "soft_block"


# ----------------------------------------------------------------------
# Concurrency
# ----------------------------------------------------------------------


def test_concurrent_resolutions_commit_exactly_once(store, trip, vote):
    vote(trip.x, "A", trip.alice)
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def attempt(i):
        resolver = CommitmentResolver(store)
        barrier.wait()
        outcome = resolver.resolve_commit(
            trip.trip_id,
            trip.x.block_id,
            trip.organizer.member_id,
            manual_activity_id=f"activity-{i}",
        )
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if r.outcome == CommitOutcome.SUCCESS]
    losers = [r for r in results if r.outcome != CommitOutcome.SUCCESS]
    assert len(winners) == 1
    assert all(r.is_already_committed for r in losers)
    assert store.get_commit(trip.x.block_id).activity_id == winners[0].commit.activity_id


def test_insert_race_reports_storage_conflict(store, resolver, trip, vote, monkeypatch):
    vote(trip.x, "A", trip.alice)
    store.insert_commit(trip.trip_id, trip.x.block_id, "C", trip.organizer.member_id)

    # The read-side check misses the commit, as if it landed after the read
    real_get_commit = store.get_commit
    calls = {"n": 0}

    def stale_get_commit(block_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_get_commit(block_id)

    monkeypatch.setattr(store, "get_commit", stale_get_commit)

    result = resolver.resolve_commit(trip.trip_id, trip.x.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.STORAGE_CONFLICT
    assert result.is_already_committed
    assert result.commit.activity_id == "C"
    assert len(resolver.list_commits(trip.trip_id)) == 1


def test_store_raises_commit_conflict_from_insert(store, trip):
    store.insert_commit(trip.trip_id, trip.x.block_id, "A", trip.organizer.member_id)

    with pytest.raises(CommitConflict) as excinfo:
        store.insert_commit(trip.trip_id, trip.x.block_id, "C", trip.organizer.member_id)

    assert excinfo.value.existing_activity_id == "A"


def test_prevent_race_is_caught_at_write_time(store, trip, vote):
    store.update_duplicate_policy(trip.trip_id, "prevent")
    vote(trip.x, "A", trip.alice)
    vote(trip.y, "A", trip.bob)

    class StaleEvaluator:
        # Simulates an evaluation that ran before the other block committed
        def evaluate(self, policy, **kwargs):
            return DuplicateDecision(DuplicateVerdict.PROCEED, policy)

        def describe_blocks(self, block_ids):
            return {bid: store.get_block(bid) for bid in block_ids}

    assert CommitmentResolver(store).resolve_commit(
        trip.trip_id, trip.x.block_id, trip.organizer.member_id
    )
    racing = CommitmentResolver(store, evaluator=StaleEvaluator())

    result = racing.resolve_commit(trip.trip_id, trip.y.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.DUPLICATE_BLOCKED
    assert [c.block_id for c in result.conflicts] == [trip.x.block_id]
    assert store.get_commit(trip.y.block_id) is None


def _commit_elsewhere_after_evaluation(store, trip, block, activity_id):
    """Evaluator that lets another block commit the activity right after it decides."""
    real = DuplicatePolicyEvaluator(store)

    class LateWriterEvaluator:
        def evaluate(self, policy, **kwargs):
            decision = real.evaluate(policy, **kwargs)
            store.insert_commit(trip.trip_id, block.block_id, activity_id, trip.organizer.member_id)
            return decision

        def describe_blocks(self, block_ids):
            return real.describe_blocks(block_ids)

    return LateWriterEvaluator()


def test_soft_block_race_requires_confirmation(store, trip, vote):
    vote(trip.x, "museum", trip.alice)
    vote(trip.y, "museum", trip.bob)
    evaluator = _commit_elsewhere_after_evaluation(store, trip, trip.x, "museum")
    resolver = CommitmentResolver(store, evaluator=evaluator)

    result = resolver.resolve_commit(trip.trip_id, trip.y.block_id, trip.organizer.member_id)

    assert result.outcome == CommitOutcome.NEEDS_CONFIRMATION
    assert result.needs_input
    assert [c.block_id for c in result.conflicts] == [trip.x.block_id]
    assert store.get_commit(trip.y.block_id) is None
    assert [p.block_id for p in store.list_activity_proposals(trip.trip_id, "museum")] == [
        trip.x.block_id,
        trip.y.block_id,
    ]


def test_soft_block_race_with_confirmation_commits(store, trip, vote):
    vote(trip.x, "museum", trip.alice)
    vote(trip.y, "museum", trip.bob)
    evaluator = _commit_elsewhere_after_evaluation(store, trip, trip.x, "museum")
    resolver = CommitmentResolver(store, evaluator=evaluator)

    result = resolver.resolve_commit(
        trip.trip_id, trip.y.block_id, trip.organizer.member_id, confirm_duplicate=True
    )

    assert result.outcome == CommitOutcome.SUCCESS
    assert len(store.find_activity_commits(trip.trip_id, "museum")) == 2


def test_concurrent_prevent_commits_of_same_activity(store, trip, vote):
    store.update_duplicate_policy(trip.trip_id, "prevent")
    for block in trip.blocks:
        vote(block, "A", trip.alice)
    barrier = threading.Barrier(len(trip.blocks))
    results = []
    lock = threading.Lock()

    def attempt(block):
        resolver = CommitmentResolver(store)
        barrier.wait()
        outcome = resolver.resolve_commit(trip.trip_id, block.block_id, trip.organizer.member_id)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(b,)) for b in trip.blocks]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r.outcome == CommitOutcome.SUCCESS) == 1
    assert all(
        r.outcome in (CommitOutcome.SUCCESS, CommitOutcome.DUPLICATE_BLOCKED) for r in results
    )
    assert len(store.find_activity_commits(trip.trip_id, "A")) == 1
