"""HTTP API for ticketry -- issues, custom fields, and workflow over JSON.

Single-project server: a module-level ``_db`` and ``_project`` are set at
startup (or by test fixtures) and injected via ``Depends(_get_db)`` and
``Depends(_get_project)``. Every request is logged as one JSON record
through ``ticketry.logging``.

Usage:
    ticketry dashboard                    # Serves http://127.0.0.1:8377/api/
    ticketry dashboard --port 9000        # Custom port
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse

from ticketry import __version__
from ticketry.core import TicketDB, find_ticketry_root, read_config
from ticketry.logging import log_command, setup_logging

DEFAULT_PORT = 8377

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state -- set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: TicketDB | None = None
_project: str = "default"


def _get_db() -> TicketDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _get_project() -> str:
    return _project


def create_app() -> Any:
    """Create the FastAPI application with all API endpoints under ``/api``."""
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse

    from ticketry.dashboard_routes.issues import create_router

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    app = FastAPI(title="Ticketry", version=__version__, docs_url=None, redoc_url=None)
    app.include_router(create_router(), prefix="/api")

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        with log_command(f"{request.method} {request.url.path}", dict(request.query_params)) as extra:
            response = await call_next(request)
            extra["status"] = response.status_code
        return response

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "version": __version__, "project": _project})

    return app


def main(port: int = DEFAULT_PORT, *, host: str = "127.0.0.1") -> None:
    """Serve the project discovered from the current directory."""
    import uvicorn

    global _db, _project

    ticketry_dir = find_ticketry_root()
    setup_logging(ticketry_dir)
    _project = read_config(ticketry_dir).get("project", "default")
    _db = TicketDB.from_project(ticketry_dir.parent, check_same_thread=False)
    logger.info("Serving project %s from %s", _project, ticketry_dir)

    app = create_app()
    print(f"Ticketry API: http://{host}:{port}/api/")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    finally:
        _db.close()
        _db = None
