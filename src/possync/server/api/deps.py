"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Request

from possync.server.control import ControlAPI


def get_control_api(request: Request) -> ControlAPI:
    """Get the control API from app state."""
    api: ControlAPI = request.app.state.control_api
    return api
