"""
Read-only confirmed itinerary export.

Describes a trip's blocks in schedule order with the committed activity (or
null while the block is still open) and the final tally. Nothing here writes
to storage; publishing the document is the publisher's job.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.tallies import compute_tally
from runtime.version import EXPORT_SCHEMA_VERSION
from shared.public_exports.publisher import PublicExportPublisher
from shared.storage.planner import PlannerStore
from shared.trips.models import Block, Commit, Trip, Vote

ITINERARY_BLOCK_STATES = ("open", "committed")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class PublicItineraryBlock:
    block_id: str
    label: str
    position: int
    day: Optional[str]
    status: str
    activity_id: Optional[str] = None
    committed_at: Optional[str] = None
    committed_by: Optional[str] = None
    tally: List[Dict[str, Any]] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "label": self.label,
            "position": int(self.position),
            "day": self.day,
            "status": self.status,
            "activity_id": self.activity_id,
            "committed_at": self.committed_at,
            "committed_by": self.committed_by,
            "tally": self.tally,
        }

    @classmethod
    def from_rows(
        cls,
        block: Block,
        commit: Optional[Commit],
        votes: Iterable[Vote],
    ) -> "PublicItineraryBlock":
        return cls(
            block_id=block.block_id,
            label=block.label,
            position=block.position,
            day=block.day,
            status="committed" if commit else "open",
            activity_id=commit.activity_id if commit else None,
            committed_at=commit.committed_at if commit else None,
            committed_by=commit.committed_by if commit else None,
            tally=[entry.to_document() for entry in compute_tally(votes)],
        )


@dataclass
class PublicItineraryExport:
    trip_id: str
    trip_name: str
    duplicate_policy: str
    schema_version: str = EXPORT_SCHEMA_VERSION
    generated_at: str = field(default_factory=_utc_now)
    blocks: List[PublicItineraryBlock] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        committed = sum(1 for block in self.blocks if block.status == "committed")
        return {
            "schema_version": self.schema_version,
            "generated_at": self.generated_at,
            "trip": {
                "trip_id": self.trip_id,
                "name": self.trip_name,
                "duplicate_policy": self.duplicate_policy,
            },
            "summary": {
                "blocks": len(self.blocks),
                "committed": committed,
                "open": len(self.blocks) - committed,
            },
            "blocks": [block.to_document() for block in self.blocks],
        }


class PublicItineraryExportBuilder:
    """
    Assembles the itinerary document from rows already loaded by the caller.
    """

    def __init__(self, *, schema_version: str = EXPORT_SCHEMA_VERSION) -> None:
        self.schema_version = schema_version

    def build(
        self,
        trip: Trip,
        blocks: Iterable[Block],
        commits: Iterable[Commit],
        votes_by_block: Mapping[str, Iterable[Vote]],
    ) -> Dict[str, Any]:
        commit_by_block = {commit.block_id: commit for commit in commits}
        export = PublicItineraryExport(
            trip_id=trip.trip_id,
            trip_name=trip.name,
            duplicate_policy=trip.duplicate_policy,
            schema_version=self.schema_version,
            blocks=[
                PublicItineraryBlock.from_rows(
                    block,
                    commit_by_block.get(block.block_id),
                    votes_by_block.get(block.block_id, []),
                )
                for block in blocks
            ],
        )
        return export.to_document()


def build_itinerary_export(store: PlannerStore, trip_id: str) -> Optional[Dict[str, Any]]:
    """Return the itinerary document for ``trip_id``, or None for an unknown trip."""
    trip = store.get_trip(trip_id)
    if trip is None:
        return None
    blocks = store.list_blocks(trip_id)
    return PublicItineraryExportBuilder().build(
        trip,
        blocks,
        store.list_commits(trip_id),
        {block.block_id: store.list_votes(block.block_id) for block in blocks},
    )


def publish_itinerary(
    store: PlannerStore,
    trip_id: str,
    publisher: Optional[PublicExportPublisher] = None,
) -> Optional[Path]:
    document = build_itinerary_export(store, trip_id)
    if document is None:
        return None
    publisher = publisher or PublicExportPublisher()
    return publisher.publish(Path("trips") / trip_id / "itinerary.json", document)
