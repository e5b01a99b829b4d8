"""Planner HTTP API service."""

from .client import ApiResponse, PlannerApiClient
from .server import PlannerApiServer

__all__ = ["PlannerApiServer", "PlannerApiClient", "ApiResponse"]
