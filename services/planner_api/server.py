"""HTTP API server for trip planning: proposals, votes and block commits."""

from __future__ import annotations

import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from core.commitment import CommitmentResolver, CommitOutcome
from core.trip_directory import DirectoryOutcome, TripDirectory
from core.voting import (
    ProposalOutcome,
    ProposalRegistry,
    SettingsOutcome,
    TripSettings,
    VoteLedger,
    VoteOutcome,
)
from runtime import version
from services.permissions import TripPermissionResolver
from shared.config.planner import PlannerConfig
from shared.logging.logger import get_logger
from shared.public_exports import build_itinerary_export
from shared.storage.planner import PlannerStore
from shared.trips.models import Member

log = get_logger("services.planner_api")

USER_HEADER = "X-TripBlocks-User"
MUTATION_HEADER = "X-Client-Mutation-Id"

COMMIT_STATUS = {
    CommitOutcome.SUCCESS: HTTPStatus.OK,
    CommitOutcome.TIE_DETECTED: HTTPStatus.CONFLICT,
    CommitOutcome.NEEDS_CONFIRMATION: HTTPStatus.CONFLICT,
    CommitOutcome.ALREADY_COMMITTED: HTTPStatus.CONFLICT,
    CommitOutcome.STORAGE_CONFLICT: HTTPStatus.CONFLICT,
    CommitOutcome.DUPLICATE_BLOCKED: HTTPStatus.CONFLICT,
    CommitOutcome.UNAUTHORIZED: HTTPStatus.FORBIDDEN,
    CommitOutcome.NO_VOTES: HTTPStatus.UNPROCESSABLE_ENTITY,
    CommitOutcome.TRIP_NOT_FOUND: HTTPStatus.NOT_FOUND,
    CommitOutcome.BLOCK_NOT_FOUND: HTTPStatus.NOT_FOUND,
}

VOTE_STATUS = {
    VoteOutcome.CAST: HTTPStatus.OK,
    VoteOutcome.REMOVED: HTTPStatus.OK,
    VoteOutcome.NOOP: HTTPStatus.OK,
    VoteOutcome.BLOCK_NOT_FOUND: HTTPStatus.NOT_FOUND,
    VoteOutcome.PROPOSAL_NOT_FOUND: HTTPStatus.NOT_FOUND,
    VoteOutcome.NOT_A_MEMBER: HTTPStatus.FORBIDDEN,
    VoteOutcome.UNAUTHORIZED: HTTPStatus.FORBIDDEN,
    VoteOutcome.VOTING_NOT_OPEN: HTTPStatus.FORBIDDEN,
    VoteOutcome.VOTING_CLOSED: HTTPStatus.FORBIDDEN,
}

PROPOSAL_STATUS = {
    ProposalOutcome.CREATED: HTTPStatus.OK,
    ProposalOutcome.WITHDRAWN: HTTPStatus.OK,
    ProposalOutcome.NOOP: HTTPStatus.OK,
    ProposalOutcome.ALREADY_PROPOSED: HTTPStatus.CONFLICT,
    ProposalOutcome.BLOCK_NOT_FOUND: HTTPStatus.NOT_FOUND,
    ProposalOutcome.NOT_A_MEMBER: HTTPStatus.FORBIDDEN,
}

SETTINGS_STATUS = {
    SettingsOutcome.UPDATED: HTTPStatus.OK,
    SettingsOutcome.CLEARED: HTTPStatus.OK,
    SettingsOutcome.UNAUTHORIZED: HTTPStatus.FORBIDDEN,
    SettingsOutcome.TRIP_NOT_FOUND: HTTPStatus.NOT_FOUND,
    SettingsOutcome.BLOCK_NOT_FOUND: HTTPStatus.NOT_FOUND,
    SettingsOutcome.INVALID: HTTPStatus.BAD_REQUEST,
}

DIRECTORY_STATUS = {
    DirectoryOutcome.CREATED: HTTPStatus.OK,
    DirectoryOutcome.ALREADY_MEMBER: HTTPStatus.CONFLICT,
    DirectoryOutcome.UNAUTHORIZED: HTTPStatus.FORBIDDEN,
    DirectoryOutcome.TRIP_NOT_FOUND: HTTPStatus.NOT_FOUND,
    DirectoryOutcome.INVALID: HTTPStatus.BAD_REQUEST,
}


class ApiError(Exception):
    """Request-level refusal raised inside a handler and rendered as JSON."""

    def __init__(self, status: HTTPStatus, outcome: str, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.outcome = outcome
        self.message = message


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class PlannerApiServer:
    def __init__(self, config: PlannerConfig, store: PlannerStore) -> None:
        self._config = config
        self._store = store
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

        permissions = TripPermissionResolver(allow_proxy_votes=config.voting.allow_proxy_votes)
        self.directory = TripDirectory(
            store,
            permissions,
            default_duplicate_policy=config.voting.default_duplicate_policy,
        )
        self.resolver = CommitmentResolver(store, permissions)
        self.ledger = VoteLedger(store, permissions)
        self.proposals = ProposalRegistry(store, permissions)
        self.settings = TripSettings(store, permissions)

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        if not self._server:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        if not self._config.api.enabled:
            log.info("Planner API server disabled via config")
            return
        if self._thread and self._thread.is_alive():
            return

        handler = self._build_handler()
        self._server = ThreadingHTTPServer(
            (self._config.api.host, int(self._config.api.port)),
            handler,
        )
        self._server.daemon_threads = True
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        host, port = self.server_address
        log.info("Planner API server running on %s:%s", host, port)

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        log.info("Planner API server stopped")

    def _build_handler(self):
        config = self._config
        store = self._store
        directory = self.directory
        resolver = self.resolver
        ledger = self.ledger
        proposals = self.proposals
        settings = self.settings

        class Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self._apply_cors()
                self.end_headers()
                self.wfile.write(body)

            def _send_result(self, status_map: Dict[Any, HTTPStatus], result) -> None:
                self._send_json(status_map[result.outcome], result.to_document())

            def _apply_cors(self) -> None:
                origins = config.api.allow_origins
                if not origins:
                    return
                origin = self.headers.get("Origin")
                if "*" in origins:
                    self.send_header("Access-Control-Allow-Origin", "*")
                elif origin and origin in origins:
                    self.send_header("Access-Control-Allow-Origin", origin)
                self.send_header(
                    "Access-Control-Allow-Headers",
                    f"Content-Type, {USER_HEADER}, {MUTATION_HEADER}",
                )
                self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")

            def do_OPTIONS(self) -> None:  # noqa: N802 - stdlib signature
                self.send_response(HTTPStatus.NO_CONTENT)
                self.send_header("Content-Length", "0")
                self._apply_cors()
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802 - stdlib signature
                self._dispatch(self._handle_api_get)

            def do_POST(self) -> None:  # noqa: N802 - stdlib signature
                self._dispatch(self._handle_api_post)

            def _dispatch(self, handler) -> None:
                parsed = urlparse(self.path)
                if not parsed.path.startswith("/api/"):
                    return self._send_json(
                        HTTPStatus.NOT_FOUND,
                        {"outcome": "not_found", "message": "Unknown endpoint"},
                    )
                try:
                    handler(parsed)
                except ApiError as exc:
                    self._send_json(exc.status, {"outcome": exc.outcome, "message": exc.message})
                except Exception:
                    log.exception(f"Unhandled error serving {self.command} {parsed.path}")
                    self._send_json(
                        HTTPStatus.INTERNAL_SERVER_ERROR,
                        {"outcome": "error", "message": "Internal server error"},
                    )

            # --------------------------------------------------
            # Request helpers
            # --------------------------------------------------

            def _read_json_body(self) -> Dict[str, Any]:
                try:
                    length = int(self.headers.get("Content-Length", 0) or 0)
                except ValueError:
                    raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "Invalid Content-Length") from None
                if length <= 0:
                    return {}
                raw = self.rfile.read(length)
                try:
                    payload = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "Body must be JSON") from None
                if not isinstance(payload, dict):
                    raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "Body must be a JSON object")
                return payload

            def _require(self, payload: Dict[str, Any], *keys: str) -> List[str]:
                missing = [key for key in keys if not payload.get(key)]
                if missing:
                    raise ApiError(
                        HTTPStatus.BAD_REQUEST,
                        "bad_request",
                        f"{', '.join(missing)} required",
                    )
                return [str(payload[key]) for key in keys]

            def _user_id(self) -> str:
                user_id = (self.headers.get(USER_HEADER) or "").strip()
                if not user_id:
                    raise ApiError(
                        HTTPStatus.UNAUTHORIZED,
                        "unauthenticated",
                        f"{USER_HEADER} header is required",
                    )
                return user_id

            def _caller(self, trip_id: str) -> Member:
                user_id = self._user_id()
                if store.get_trip(trip_id) is None:
                    raise ApiError(HTTPStatus.NOT_FOUND, "trip_not_found", "Trip not found")
                member = store.get_member(trip_id, user_id)
                if member is None:
                    raise ApiError(HTTPStatus.FORBIDDEN, "unauthorized", "Not a member of this trip")
                return member

            def _caller_for_block(self, block_id: str) -> Member:
                block = store.get_block(block_id)
                if block is None:
                    raise ApiError(HTTPStatus.NOT_FOUND, "block_not_found", "Block not found")
                return self._caller(block.trip_id)

            def _mutation_id(self) -> Optional[str]:
                value = (self.headers.get(MUTATION_HEADER) or "").strip()
                return value or None

            # --------------------------------------------------
            # GET
            # --------------------------------------------------

            def _handle_api_get(self, parsed) -> None:
                query = parse_qs(parsed.query)
                path = parsed.path

                def param(name: str) -> Optional[str]:
                    return (query.get(name) or [None])[0]

                if path == "/api/version":
                    return self._send_json(HTTPStatus.OK, version.as_dict())

                if path == "/api/trips":
                    trip_id = param("trip_id")
                    if not trip_id:
                        raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "trip_id required")
                    self._caller(trip_id)
                    return self._send_json(HTTPStatus.OK, directory.get_overview(trip_id).to_document())

                if path == "/api/blocks/tally":
                    block_id = param("block_id")
                    if not block_id:
                        raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "block_id required")
                    self._caller_for_block(block_id)
                    return self._send_json(HTTPStatus.OK, ledger.get_tally(block_id).to_document())

                if path == "/api/blocks/commit":
                    block_id = param("block_id")
                    if not block_id:
                        raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "block_id required")
                    self._caller_for_block(block_id)
                    commit = resolver.get_commit(block_id)
                    return self._send_json(
                        HTTPStatus.OK,
                        {"block_id": block_id, "commit": commit.to_dict() if commit else None},
                    )

                if path == "/api/commits":
                    trip_id = param("trip_id")
                    if not trip_id:
                        raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "trip_id required")
                    self._caller(trip_id)
                    commits = resolver.list_commits(trip_id)
                    return self._send_json(
                        HTTPStatus.OK,
                        {"trip_id": trip_id, "commits": [c.to_dict() for c in commits]},
                    )

                if path == "/api/proposals":
                    block_id = param("block_id")
                    trip_id = param("trip_id")
                    if block_id:
                        self._caller_for_block(block_id)
                        rows = proposals.list_block_proposals(block_id)
                    elif trip_id:
                        self._caller(trip_id)
                        rows = proposals.list_trip_proposals(trip_id)
                    else:
                        raise ApiError(
                            HTTPStatus.BAD_REQUEST,
                            "bad_request",
                            "block_id or trip_id required",
                        )
                    return self._send_json(HTTPStatus.OK, {"proposals": [p.to_dict() for p in rows]})

                if path == "/api/trips/itinerary":
                    trip_id = param("trip_id")
                    if not trip_id:
                        raise ApiError(HTTPStatus.BAD_REQUEST, "bad_request", "trip_id required")
                    self._caller(trip_id)
                    return self._send_json(HTTPStatus.OK, build_itinerary_export(store, trip_id))

                raise ApiError(HTTPStatus.NOT_FOUND, "not_found", "Unknown endpoint")

            # --------------------------------------------------
            # POST
            # --------------------------------------------------

            def _handle_api_post(self, parsed) -> None:
                path = parsed.path
                payload = self._read_json_body()

                if path == "/api/trips/create":
                    user_id = self._user_id()
                    (name,) = self._require(payload, "name")
                    result = directory.create_trip(
                        name,
                        user_id,
                        str(payload.get("display_name") or user_id),
                        payload.get("duplicate_policy"),
                    )
                    return self._send_result(DIRECTORY_STATUS, result)

                if path == "/api/trips/members":
                    trip_id, user_id = self._require(payload, "trip_id", "user_id")
                    caller = self._caller(trip_id)
                    result = directory.add_member(
                        trip_id,
                        caller.member_id,
                        user_id,
                        str(payload.get("display_name") or user_id),
                        str(payload.get("role") or "collaborator"),
                    )
                    return self._send_result(DIRECTORY_STATUS, result)

                if path == "/api/trips/policy":
                    trip_id, policy = self._require(payload, "trip_id", "policy")
                    caller = self._caller(trip_id)
                    result = settings.set_duplicate_policy(trip_id, caller.member_id, policy)
                    return self._send_result(SETTINGS_STATUS, result)

                if path == "/api/blocks/create":
                    trip_id, label = self._require(payload, "trip_id", "label")
                    caller = self._caller(trip_id)
                    result = directory.create_block(
                        trip_id,
                        caller.member_id,
                        label,
                        payload.get("position", 0),
                        day=payload.get("day"),
                        vote_open_ts=payload.get("vote_open_ts"),
                        vote_close_ts=payload.get("vote_close_ts"),
                    )
                    return self._send_result(DIRECTORY_STATUS, result)

                if path == "/api/blocks/commit":
                    trip_id, block_id = self._require(payload, "trip_id", "block_id")
                    caller = self._caller(trip_id)
                    result = resolver.resolve_commit(
                        trip_id,
                        block_id,
                        caller.member_id,
                        manual_activity_id=payload.get("activity_id") or None,
                        confirm_duplicate=_as_bool(payload.get("confirm_duplicate", False)),
                        client_mutation_id=self._mutation_id(),
                    )
                    return self._send_result(COMMIT_STATUS, result)

                if path == "/api/blocks/window":
                    trip_id, block_id = self._require(payload, "trip_id", "block_id")
                    caller = self._caller(trip_id)
                    result = settings.set_voting_window(
                        trip_id,
                        block_id,
                        caller.member_id,
                        payload.get("vote_open_ts"),
                        payload.get("vote_close_ts"),
                    )
                    return self._send_result(SETTINGS_STATUS, result)

                if path == "/api/blocks/window/clear":
                    trip_id, block_id = self._require(payload, "trip_id", "block_id")
                    caller = self._caller(trip_id)
                    result = settings.clear_voting_window(trip_id, block_id, caller.member_id)
                    return self._send_result(SETTINGS_STATUS, result)

                if path in ("/api/votes/cast", "/api/votes/remove"):
                    trip_id, block_id, activity_id = self._require(
                        payload, "trip_id", "block_id", "activity_id"
                    )
                    caller = self._caller(trip_id)
                    member_id = str(payload.get("member_id") or caller.member_id)
                    if path == "/api/votes/cast":
                        result = ledger.cast_vote(
                            trip_id,
                            block_id,
                            activity_id,
                            member_id,
                            actor_member_id=caller.member_id,
                            client_mutation_id=self._mutation_id(),
                        )
                    else:
                        result = ledger.remove_vote(
                            trip_id,
                            block_id,
                            activity_id,
                            member_id,
                            actor_member_id=caller.member_id,
                        )
                    return self._send_result(VOTE_STATUS, result)

                if path in ("/api/proposals/create", "/api/proposals/withdraw"):
                    trip_id, block_id, activity_id = self._require(
                        payload, "trip_id", "block_id", "activity_id"
                    )
                    caller = self._caller(trip_id)
                    if path == "/api/proposals/create":
                        result = proposals.propose_activity(
                            trip_id, block_id, activity_id, caller.member_id
                        )
                    else:
                        result = proposals.withdraw_proposal(
                            trip_id, block_id, activity_id, caller.member_id
                        )
                    return self._send_result(PROPOSAL_STATUS, result)

                raise ApiError(HTTPStatus.NOT_FOUND, "not_found", "Unknown endpoint")

            def log_message(self, format: str, *args: Any) -> None:
                log.info("%s - %s", self.address_string(), format % args)

        return Handler


__all__ = ["PlannerApiServer", "ApiError", "USER_HEADER", "MUTATION_HEADER"]
