"""Sync control API routes.

Endpoints:
- POST /api/sync/invoke: Run any control operation ({"op": ..., ...})
- GET /api/sync/status: Shortcut for getStatus
- GET /api/sync/health: Shortcut for getHealth

Handlers are plain functions so that FastAPI runs the blocking sync passes
in its thread pool.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends

from possync.server.api.deps import get_control_api
from possync.server.control import ControlAPI
from possync.server.schemas import ControlRequest, Envelope

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/invoke", response_model=Envelope[Any])
def invoke(
    request: Annotated[ControlRequest, Body(discriminator="op")],
    api: ControlAPI = Depends(get_control_api),
) -> Envelope[Any]:
    """Run a control operation."""
    return api.dispatch(request)


@router.get("/status", response_model=Envelope[Any])
def get_status(api: ControlAPI = Depends(get_control_api)) -> Envelope[Any]:
    """Get the sync status summary."""
    return api.get_status()


@router.get("/health", response_model=Envelope[Any])
def get_health(api: ControlAPI = Depends(get_control_api)) -> Envelope[Any]:
    """Get the sync health snapshot."""
    return api.get_health()
