"""
Python client for the planner HTTP API.

Engine refusals (tie, needs confirmation, already committed, voting closed,
...) arrive as 4xx responses with a structured body and are returned, not
raised. Server errors and transport failures raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from services.planner_api.server import MUTATION_HEADER, USER_HEADER
from shared.logging.logger import get_logger

log = get_logger("services.planner_api.client")


@dataclass
class ApiResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def outcome(self) -> Optional[str]:
        return self.body.get("outcome")


class PlannerApiClient:
    def __init__(
        self,
        base_url: str,
        user_id: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.user_id = user_id
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={USER_HEADER: user_id, "Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PlannerApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _wrap(self, resp: httpx.Response) -> ApiResponse:
        if resp.status_code >= 500:
            log.error(f"Planner API {resp.request.method} {resp.request.url.path} failed: {resp.status_code}")
            resp.raise_for_status()

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}
        return ApiResponse(status_code=resp.status_code, body=data)

    def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        *,
        client_mutation_id: Optional[str] = None,
    ) -> ApiResponse:
        headers = {MUTATION_HEADER: client_mutation_id} if client_mutation_id else None
        return self._wrap(self._client.post(path, json=payload, headers=headers))

    def _get(self, path: str, **params: Any) -> ApiResponse:
        return self._wrap(self._client.get(path, params=params))

    def get_version(self) -> ApiResponse:
        return self._get("/api/version")

    # --------------------------------------------------
    # Trips
    # --------------------------------------------------

    def create_trip(
        self,
        name: str,
        *,
        display_name: Optional[str] = None,
        duplicate_policy: Optional[str] = None,
    ) -> ApiResponse:
        payload: Dict[str, Any] = {"name": name}
        if display_name:
            payload["display_name"] = display_name
        if duplicate_policy:
            payload["duplicate_policy"] = duplicate_policy
        return self._post("/api/trips/create", payload)

    def add_member(
        self,
        trip_id: str,
        user_id: str,
        *,
        display_name: Optional[str] = None,
        role: str = "collaborator",
    ) -> ApiResponse:
        return self._post(
            "/api/trips/members",
            {
                "trip_id": trip_id,
                "user_id": user_id,
                "display_name": display_name or user_id,
                "role": role,
            },
        )

    def set_duplicate_policy(self, trip_id: str, policy: str) -> ApiResponse:
        return self._post("/api/trips/policy", {"trip_id": trip_id, "policy": policy})

    def get_trip(self, trip_id: str) -> ApiResponse:
        return self._get("/api/trips", trip_id=trip_id)

    def get_itinerary(self, trip_id: str) -> ApiResponse:
        return self._get("/api/trips/itinerary", trip_id=trip_id)

    # --------------------------------------------------
    # Blocks
    # --------------------------------------------------

    def create_block(
        self,
        trip_id: str,
        label: str,
        position: int,
        *,
        day: Optional[str] = None,
    ) -> ApiResponse:
        return self._post(
            "/api/blocks/create",
            {"trip_id": trip_id, "label": label, "position": position, "day": day},
        )

    def commit_block(
        self,
        trip_id: str,
        block_id: str,
        *,
        activity_id: Optional[str] = None,
        confirm_duplicate: bool = False,
        client_mutation_id: Optional[str] = None,
    ) -> ApiResponse:
        payload: Dict[str, Any] = {
            "trip_id": trip_id,
            "block_id": block_id,
            "confirm_duplicate": confirm_duplicate,
        }
        if activity_id:
            payload["activity_id"] = activity_id
        return self._post("/api/blocks/commit", payload, client_mutation_id=client_mutation_id)

    def set_voting_window(
        self,
        trip_id: str,
        block_id: str,
        vote_open_ts: Optional[str],
        vote_close_ts: Optional[str],
    ) -> ApiResponse:
        return self._post(
            "/api/blocks/window",
            {
                "trip_id": trip_id,
                "block_id": block_id,
                "vote_open_ts": vote_open_ts,
                "vote_close_ts": vote_close_ts,
            },
        )

    def clear_voting_window(self, trip_id: str, block_id: str) -> ApiResponse:
        return self._post("/api/blocks/window/clear", {"trip_id": trip_id, "block_id": block_id})

    def get_tally(self, block_id: str) -> ApiResponse:
        return self._get("/api/blocks/tally", block_id=block_id)

    def get_commit(self, block_id: str) -> ApiResponse:
        return self._get("/api/blocks/commit", block_id=block_id)

    def list_commits(self, trip_id: str) -> ApiResponse:
        return self._get("/api/commits", trip_id=trip_id)

    # --------------------------------------------------
    # Proposals / votes
    # --------------------------------------------------

    def propose(self, trip_id: str, block_id: str, activity_id: str) -> ApiResponse:
        return self._post(
            "/api/proposals/create",
            {"trip_id": trip_id, "block_id": block_id, "activity_id": activity_id},
        )

    def withdraw(self, trip_id: str, block_id: str, activity_id: str) -> ApiResponse:
        return self._post(
            "/api/proposals/withdraw",
            {"trip_id": trip_id, "block_id": block_id, "activity_id": activity_id},
        )

    def list_proposals(self, *, block_id: Optional[str] = None, trip_id: Optional[str] = None) -> ApiResponse:
        params = {k: v for k, v in (("block_id", block_id), ("trip_id", trip_id)) if v}
        return self._get("/api/proposals", **params)

    def cast_vote(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        *,
        member_id: Optional[str] = None,
        client_mutation_id: Optional[str] = None,
    ) -> ApiResponse:
        payload: Dict[str, Any] = {
            "trip_id": trip_id,
            "block_id": block_id,
            "activity_id": activity_id,
        }
        if member_id:
            payload["member_id"] = member_id
        return self._post("/api/votes/cast", payload, client_mutation_id=client_mutation_id)

    def remove_vote(
        self,
        trip_id: str,
        block_id: str,
        activity_id: str,
        *,
        member_id: Optional[str] = None,
    ) -> ApiResponse:
        payload: Dict[str, Any] = {
            "trip_id": trip_id,
            "block_id": block_id,
            "activity_id": activity_id,
        }
        if member_id:
            payload["member_id"] = member_id
        return self._post("/api/votes/remove", payload)
