"""
Routes for the tunnel control API.

Provides:
- POST /start  — start the bundler tunnel (or report the running one)
- POST /stop   — stop it
- GET /status  — current session
- GET /logs    — captured, sanitized output
"""

from starlette.requests import Request
from starlette.responses import JSONResponse

from metrotun.exceptions import SpawnError
from metrotun.logger import get_logger
from metrotun.tunnel.models import (
    ErrorResponse,
    LogEntryInfo,
    LogsResponse,
    SessionInfo,
    StartResponse,
    StatusResponse,
    StopResponse,
)

logger = get_logger(__name__)


def _get_supervisor(request: Request):
    """Get TunnelSupervisor from app state."""
    return getattr(request.app.state, "supervisor", None)


def _not_initialized() -> JSONResponse:
    err = ErrorResponse(error="Tunnel supervisor not initialized")
    return JSONResponse(err.model_dump(), status_code=503)


def _dump(model) -> dict:
    """Serialize a response model, leaving out an unset ``message``."""
    exclude = {"message"} if getattr(model, "message", None) is None else set()
    return model.model_dump(exclude=exclude)


async def start_tunnel(request: Request) -> JSONResponse:
    """POST /start — Start a tunnel session."""
    supervisor = _get_supervisor(request)
    if not supervisor:
        return _not_initialized()

    try:
        result = await supervisor.start()
    except SpawnError as e:
        err = ErrorResponse(error=str(e))
        return JSONResponse(err.model_dump(), status_code=500)
    except Exception as e:
        logger.error(f"Unexpected error starting tunnel: {e}")
        err = ErrorResponse(error=f"Internal error: {e}")
        return JSONResponse(err.model_dump(), status_code=500)

    resp = StartResponse(
        session=SessionInfo(**result.session),
        message="Already running" if result.already_running else None,
    )
    return JSONResponse(_dump(resp))


async def stop_tunnel(request: Request) -> JSONResponse:
    """POST /stop — Stop the tunnel session. Always succeeds."""
    supervisor = _get_supervisor(request)
    if not supervisor:
        return _not_initialized()

    result = await supervisor.stop()
    resp = StopResponse(message=None if result.was_running else "Not running")
    return JSONResponse(_dump(resp))


async def tunnel_status(request: Request) -> JSONResponse:
    """GET /status — Report whether a session is active, and its URL."""
    supervisor = _get_supervisor(request)
    if not supervisor:
        return _not_initialized()

    status = supervisor.status()
    resp = StatusResponse(
        active=status["active"], session=SessionInfo(**status["session"])
    )
    return JSONResponse(resp.model_dump())


async def tunnel_logs(request: Request) -> JSONResponse:
    """GET /logs — Captured output of the current session, oldest first."""
    supervisor = _get_supervisor(request)
    if not supervisor:
        return _not_initialized()

    resp = LogsResponse(
        logs=[LogEntryInfo(**entry.to_dict()) for entry in supervisor.logs()]
    )
    return JSONResponse(resp.model_dump())
