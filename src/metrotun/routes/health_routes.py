"""
Health check endpoint.
"""

import time
from datetime import datetime

from starlette.requests import Request
from starlette.responses import JSONResponse

start_time = time.time()


async def health_check(request: Request) -> JSONResponse:
    """
    Basic health check endpoint.

    Returns 200 if the control server is running, whether or not a tunnel is.
    """
    supervisor = getattr(request.app.state, "supervisor", None)
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "uptime_seconds": int(time.time() - start_time),
            "tunnel_active": bool(supervisor and supervisor.is_active),
        }
    )
