"""SQLite-backed storage adapter for trips, proposals, votes and commits."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional

from shared.logging.logger import get_logger
from shared.storage.paths import DATA_DIR
from shared.storage.planner.errors import (
    CommitConflict,
    DuplicateActivityConflict,
    MemberExists,
    ProposalExists,
)
from shared.trips.models import (
    Block,
    Commit,
    Member,
    Proposal,
    Trip,
    Vote,
    new_id,
    normalize_policy,
    normalize_role,
    parse_iso,
    to_iso,
    utc_now_iso,
)

log = get_logger("shared.storage.planner")

DEFAULT_DB_PATH = DATA_DIR / "tripblocks.db"


class PlannerStore:
    """
    SQLite-backed planner store.

    Tables:
      - trips
      - trip_members
      - blocks
      - block_proposals   UNIQUE(block_id, activity_id)
      - votes             UNIQUE(block_id, activity_id, member_id)
      - commits           UNIQUE(block_id)

    Every mutating call runs in its own ``BEGIN IMMEDIATE`` transaction. The
    unique constraints are the only concurrency guard, so several processes
    may share one database file.
    """

    def __init__(
        self,
        db_path: Path | str = DEFAULT_DB_PATH,
        *,
        busy_timeout: float = 5.0,
    ):
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = float(busy_timeout)
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS trips (
                    trip_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    duplicate_policy TEXT NOT NULL DEFAULT 'soft_block',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS trip_members (
                    member_id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL REFERENCES trips(trip_id) ON DELETE CASCADE,
                    role TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    user_id TEXT,
                    joined_at TEXT NOT NULL,
                    UNIQUE(trip_id, user_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS blocks (
                    block_id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL REFERENCES trips(trip_id) ON DELETE CASCADE,
                    label TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    day TEXT,
                    vote_open_ts TEXT,
                    vote_close_ts TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS block_proposals (
                    proposal_id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL REFERENCES trips(trip_id) ON DELETE CASCADE,
                    block_id TEXT NOT NULL REFERENCES blocks(block_id) ON DELETE CASCADE,
                    activity_id TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(block_id, activity_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS votes (
                    vote_id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL REFERENCES trips(trip_id) ON DELETE CASCADE,
                    block_id TEXT NOT NULL REFERENCES blocks(block_id) ON DELETE CASCADE,
                    activity_id TEXT NOT NULL,
                    member_id TEXT NOT NULL REFERENCES trip_members(member_id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    client_mutation_id TEXT,
                    UNIQUE(block_id, activity_id, member_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS commits (
                    commit_id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL REFERENCES trips(trip_id) ON DELETE CASCADE,
                    block_id TEXT NOT NULL REFERENCES blocks(block_id) ON DELETE CASCADE,
                    activity_id TEXT NOT NULL,
                    committed_by TEXT NOT NULL REFERENCES trip_members(member_id),
                    committed_at TEXT NOT NULL,
                    client_mutation_id TEXT,
                    UNIQUE(block_id)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_blocks_trip ON blocks(trip_id, day, position)"
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_block_proposals_trip_activity
                ON block_proposals(trip_id, activity_id)
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_votes_block_activity ON votes(block_id, activity_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_commits_trip_activity ON commits(trip_id, activity_id)"
            )

    # ------------------------------------------------------------------
    # HELPERS
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_trip(row: Mapping[str, Any]) -> Trip:
        return Trip(
            trip_id=row["trip_id"],
            name=row["name"],
            duplicate_policy=row["duplicate_policy"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_member(row: Mapping[str, Any]) -> Member:
        return Member(
            member_id=row["member_id"],
            trip_id=row["trip_id"],
            role=row["role"],
            display_name=row["display_name"],
            user_id=row["user_id"],
            joined_at=row["joined_at"],
        )

    @staticmethod
    def _row_to_block(row: Mapping[str, Any]) -> Block:
        return Block(
            block_id=row["block_id"],
            trip_id=row["trip_id"],
            label=row["label"],
            position=row["position"],
            day=row["day"],
            vote_open_ts=row["vote_open_ts"],
            vote_close_ts=row["vote_close_ts"],
        )

    @staticmethod
    def _row_to_proposal(row: Mapping[str, Any]) -> Proposal:
        return Proposal(
            proposal_id=row["proposal_id"],
            trip_id=row["trip_id"],
            block_id=row["block_id"],
            activity_id=row["activity_id"],
            created_by=row["created_by"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_vote(row: Mapping[str, Any]) -> Vote:
        return Vote(
            vote_id=row["vote_id"],
            trip_id=row["trip_id"],
            block_id=row["block_id"],
            activity_id=row["activity_id"],
            member_id=row["member_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            client_mutation_id=row["client_mutation_id"],
        )

    @staticmethod
    def _row_to_commit(row: Mapping[str, Any]) -> Commit:
        return Commit(
            commit_id=row["commit_id"],
            trip_id=row["trip_id"],
            block_id=row["block_id"],
            activity_id=row["activity_id"],
            committed_by=row["committed_by"],
            committed_at=row["committed_at"],
            client_mutation_id=row["client_mutation_id"],
        )

    @staticmethod
    def _validate_window(open_ts: Optional[str], close_ts: Optional[str]) -> None:
        if open_ts and close_ts and parse_iso(open_ts) >= parse_iso(close_ts):
            raise ValueError("vote_open_ts must be earlier than vote_close_ts")

    # ------------------------------------------------------------------
    # TRIPS / MEMBERS
    # ------------------------------------------------------------------

    def create_trip(self, name: str, duplicate_policy: str = "soft_block") -> Trip:
        policy = normalize_policy(duplicate_policy)
        now = utc_now_iso()
        trip = Trip(trip_id=new_id(), name=name, duplicate_policy=policy, created_at=now)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO trips (trip_id, name, duplicate_policy, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (trip.trip_id, trip.name, trip.duplicate_policy, now, now),
            )
        return trip

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM trips WHERE trip_id = ?", (trip_id,)).fetchone()
        return self._row_to_trip(row) if row else None

    def update_duplicate_policy(self, trip_id: str, policy: str) -> Optional[Trip]:
        policy = normalize_policy(policy)
        with self._transaction() as conn:
            conn.execute(
                "UPDATE trips SET duplicate_policy = ?, updated_at = ? WHERE trip_id = ?",
                (policy, utc_now_iso(), trip_id),
            )
            row = conn.execute("SELECT * FROM trips WHERE trip_id = ?", (trip_id,)).fetchone()
        return self._row_to_trip(row) if row else None

    def add_member(
        self,
        trip_id: str,
        role: str,
        display_name: str,
        *,
        user_id: Optional[str] = None,
    ) -> Member:
        member = Member(
            member_id=new_id(),
            trip_id=trip_id,
            role=normalize_role(role),
            display_name=display_name,
            user_id=user_id,
            joined_at=utc_now_iso(),
        )
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO trip_members (member_id, trip_id, role, display_name, user_id, joined_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        member.member_id,
                        member.trip_id,
                        member.role,
                        member.display_name,
                        member.user_id,
                        member.joined_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if user_id and self.get_member(trip_id, user_id):
                raise MemberExists(trip_id, user_id) from exc
            raise
        return member

    def get_member(self, trip_id: str, user_id: str) -> Optional[Member]:
        """Resolve an authenticated user to their membership in a trip."""
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM trip_members WHERE trip_id = ? AND user_id = ?",
                (trip_id, user_id),
            ).fetchone()
        return self._row_to_member(row) if row else None

    def get_member_by_id(self, trip_id: str, member_id: str) -> Optional[Member]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM trip_members WHERE trip_id = ? AND member_id = ?",
                (trip_id, member_id),
            ).fetchone()
        return self._row_to_member(row) if row else None

    def list_members(self, trip_id: str) -> List[Member]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM trip_members WHERE trip_id = ? ORDER BY joined_at, rowid",
                (trip_id,),
            ).fetchall()
        return [self._row_to_member(r) for r in rows]

    # ------------------------------------------------------------------
    # BLOCKS
    # ------------------------------------------------------------------

    def create_block(
        self,
        trip_id: str,
        label: str,
        position: int,
        *,
        day: Optional[str] = None,
        vote_open_ts: Optional[str] = None,
        vote_close_ts: Optional[str] = None,
    ) -> Block:
        open_iso = to_iso(vote_open_ts)
        close_iso = to_iso(vote_close_ts)
        self._validate_window(open_iso, close_iso)

        block = Block(
            block_id=new_id(),
            trip_id=trip_id,
            label=label,
            position=int(position),
            day=day,
            vote_open_ts=open_iso,
            vote_close_ts=close_iso,
        )
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO blocks (
                    block_id, trip_id, label, position, day,
                    vote_open_ts, vote_close_ts, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    block.block_id,
                    block.trip_id,
                    block.label,
                    block.position,
                    block.day,
                    block.vote_open_ts,
                    block.vote_close_ts,
                    utc_now_iso(),
                ),
            )
        return block

    def get_block(self, block_id: str) -> Optional[Block]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM blocks WHERE block_id = ?", (block_id,)).fetchone()
        return self._row_to_block(row) if row else None

    def list_blocks(self, trip_id: str) -> List[Block]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT * FROM blocks
                WHERE trip_id = ?
                ORDER BY COALESCE(day, ''), position, rowid
                """,
                (trip_id,),
            ).fetchall()
        return [self._row_to_block(r) for r in rows]

    def update_voting_window(
        self,
        block_id: str,
        vote_open_ts: Optional[str],
        vote_close_ts: Optional[str],
    ) -> Optional[Block]:
        open_iso = to_iso(vote_open_ts)
        close_iso = to_iso(vote_close_ts)
        self._validate_window(open_iso, close_iso)

        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE blocks
                SET vote_open_ts = ?, vote_close_ts = ?, updated_at = ?
                WHERE block_id = ?
                """,
                (open_iso, close_iso, utc_now_iso(), block_id),
            )
            row = conn.execute("SELECT * FROM blocks WHERE block_id = ?", (block_id,)).fetchone()
        return self._row_to_block(row) if row else None

    # ------------------------------------------------------------------
    # PROPOSALS
    # ------------------------------------------------------------------

    def add_proposal(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        created_by: str,
    ) -> Proposal:
        proposal = Proposal(
            proposal_id=new_id(),
            trip_id=trip_id,
            block_id=block_id,
            activity_id=activity_id,
            created_by=created_by,
            created_at=utc_now_iso(),
        )
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO block_proposals (
                        proposal_id, trip_id, block_id, activity_id, created_by, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        proposal.proposal_id,
                        proposal.trip_id,
                        proposal.block_id,
                        proposal.activity_id,
                        proposal.created_by,
                        proposal.created_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if self.get_proposal(block_id, activity_id):
                raise ProposalExists(block_id, activity_id) from exc
            raise
        return proposal

    def get_proposal(self, block_id: str, activity_id: str) -> Optional[Proposal]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM block_proposals WHERE block_id = ? AND activity_id = ?",
                (block_id, activity_id),
            ).fetchone()
        return self._row_to_proposal(row) if row else None

    def delete_proposal(self, block_id: str, activity_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM block_proposals WHERE block_id = ? AND activity_id = ?",
                (block_id, activity_id),
            )
        return cursor.rowcount > 0

    def list_block_proposals(self, block_id: str) -> List[Proposal]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM block_proposals WHERE block_id = ? ORDER BY created_at, rowid",
                (block_id,),
            ).fetchall()
        return [self._row_to_proposal(r) for r in rows]

    def list_trip_proposals(self, trip_id: str) -> List[Proposal]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM block_proposals WHERE trip_id = ? ORDER BY created_at, rowid",
                (trip_id,),
            ).fetchall()
        return [self._row_to_proposal(r) for r in rows]

    def list_activity_proposals(self, trip_id: str, activity_id: str) -> List[Proposal]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT * FROM block_proposals
                WHERE trip_id = ? AND activity_id = ?
                ORDER BY created_at, rowid
                """,
                (trip_id, activity_id),
            ).fetchall()
        return [self._row_to_proposal(r) for r in rows]

    def purge_activity_proposals(
        self,
        trip_id: str,
        activity_id: str,
        *,
        keep_block_id: str,
    ) -> int:
        """Delete the activity's proposals in every block of the trip but one."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM block_proposals
                WHERE trip_id = ? AND activity_id = ? AND block_id != ?
                """,
                (trip_id, activity_id, keep_block_id),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # VOTES
    # ------------------------------------------------------------------

    def upsert_vote(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        member_id: str,
        *,
        client_mutation_id: Optional[str] = None,
    ) -> Vote:
        now = utc_now_iso()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO votes (
                    vote_id, trip_id, block_id, activity_id, member_id,
                    created_at, updated_at, client_mutation_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(block_id, activity_id, member_id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    client_mutation_id = COALESCE(excluded.client_mutation_id, client_mutation_id)
                """,
                (new_id(), trip_id, block_id, activity_id, member_id, now, now, client_mutation_id),
            )
            row = conn.execute(
                """
                SELECT * FROM votes
                WHERE block_id = ? AND activity_id = ? AND member_id = ?
                """,
                (block_id, activity_id, member_id),
            ).fetchone()
        return self._row_to_vote(row)

    def delete_vote(self, block_id: str, activity_id: str, member_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM votes WHERE block_id = ? AND activity_id = ? AND member_id = ?",
                (block_id, activity_id, member_id),
            )
        return cursor.rowcount > 0

    def list_votes(self, block_id: str) -> List[Vote]:
        # rowid order keeps first-cast order stable across upserts
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM votes WHERE block_id = ? ORDER BY rowid",
                (block_id,),
            ).fetchall()
        return [self._row_to_vote(r) for r in rows]

    # ------------------------------------------------------------------
    # COMMITS
    # ------------------------------------------------------------------

    def get_commit(self, block_id: str) -> Optional[Commit]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM commits WHERE block_id = ?", (block_id,)).fetchone()
        return self._row_to_commit(row) if row else None

    def list_commits(self, trip_id: str) -> List[Commit]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM commits WHERE trip_id = ? ORDER BY committed_at DESC, rowid DESC",
                (trip_id,),
            ).fetchall()
        return [self._row_to_commit(r) for r in rows]

    def find_activity_commits(
        self,
        trip_id: str,
        activity_id: str,
        *,
        exclude_block_id: Optional[str] = None,
    ) -> List[Commit]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT * FROM commits
                WHERE trip_id = ? AND activity_id = ? AND block_id != COALESCE(?, '')
                ORDER BY committed_at, rowid
                """,
                (trip_id, activity_id, exclude_block_id),
            ).fetchall()
        return [self._row_to_commit(r) for r in rows]

    def insert_commit(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        committed_by: str,
        *,
        exclusive_activity: bool = False,
        client_mutation_id: Optional[str] = None,
    ) -> Commit:
        """
        Write the commit row for a block.

        Raises CommitConflict when the block is already committed (detected
        by the unique constraint, not a prior read). With
        ``exclusive_activity`` the trip is re-checked for other commits of the
        same activity inside the same transaction and DuplicateActivityConflict
        is raised if any exist.
        """
        commit = Commit(
            commit_id=new_id(),
            trip_id=trip_id,
            block_id=block_id,
            activity_id=activity_id,
            committed_by=committed_by,
            committed_at=utc_now_iso(),
            client_mutation_id=client_mutation_id,
        )

        with self._transaction() as conn:
            if exclusive_activity:
                rows = conn.execute(
                    """
                    SELECT block_id FROM commits
                    WHERE trip_id = ? AND activity_id = ? AND block_id != ?
                    """,
                    (trip_id, activity_id, block_id),
                ).fetchall()
                if rows:
                    raise DuplicateActivityConflict(activity_id, [r["block_id"] for r in rows])

            try:
                conn.execute(
                    """
                    INSERT INTO commits (
                        commit_id, trip_id, block_id, activity_id,
                        committed_by, committed_at, client_mutation_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        commit.commit_id,
                        commit.trip_id,
                        commit.block_id,
                        commit.activity_id,
                        commit.committed_by,
                        commit.committed_at,
                        commit.client_mutation_id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                row = conn.execute(
                    "SELECT activity_id FROM commits WHERE block_id = ?",
                    (block_id,),
                ).fetchone()
                if row:
                    log.warning(f"Commit insert for block {block_id} lost to an existing commit")
                    raise CommitConflict(block_id, row["activity_id"]) from exc
                raise

        return commit
