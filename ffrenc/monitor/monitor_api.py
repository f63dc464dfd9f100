"""
ffrenc Monitor - Read-Only HTTP API

Exposes the latest aggregate snapshot of a running batch over HTTP.
This API is STRICTLY READ-ONLY.

No POST, PUT, PATCH, or DELETE endpoints are provided.
No job control, retry, or cancellation capabilities exist.

Security Warning:
-----------------
By default, this API binds to localhost (127.0.0.1) only.
Binding to any other address requires FFRENC_MONITOR_LAN=true:
- Anyone on the network can view job data
- No authentication is implemented
- Input and output paths are exposed
"""

import asyncio
import contextlib
import logging
import os
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query

from .state import AggregateSnapshot

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})

SnapshotSource = Callable[[], Optional[AggregateSnapshot]]


def lan_exposure_enabled() -> bool:
    return os.environ.get("FFRENC_MONITOR_LAN", "false").lower() == "true"


def resolve_bind_host(host: Optional[str]) -> str:
    """
    Get the host to bind to.

    Non-loopback hosts fall back to localhost unless FFRENC_MONITOR_LAN=true.
    """
    host = host or DEFAULT_HOST
    if host in LOOPBACK_HOSTS:
        return host
    if lan_exposure_enabled():
        logger.warning(f"[Monitor] LAN exposure enabled, binding to {host}. No authentication is configured.")
        return host
    logger.warning(f"[Monitor] Refusing to bind {host} without FFRENC_MONITOR_LAN=true, using {DEFAULT_HOST}")
    return DEFAULT_HOST


def create_monitor_app(source: SnapshotSource) -> FastAPI:
    """
    Create the read-only monitoring API application.

    Args:
        source: Callable returning the latest published snapshot, or None
            before the first frame (usually `lambda: aggregator.latest`)

    Returns:
        FastAPI application with read-only endpoints
    """
    app = FastAPI(
        title="ffrenc Monitor API",
        description=(
            "Read-only view of a running ffrenc batch.\n\n"
            "**This API provides visibility only. No job control is possible.**"
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
    )

    def current() -> AggregateSnapshot:
        snapshot = source()
        if snapshot is None:
            raise HTTPException(status_code=503, detail="No snapshot published yet")
        return snapshot

    @app.get("/")
    async def root():
        """API root with status information."""
        return {
            "service": "ffrenc Monitor",
            "version": "1.0.0",
            "mode": "read-only",
            "capabilities": ["View snapshot", "View jobs", "View stats"],
        }

    @app.get("/health")
    async def health():
        return {"status": "ok", "mode": "read-only", "ready": source() is not None}

    @app.get("/snapshot")
    async def snapshot():
        """The latest aggregate snapshot, as rendered by the json format."""
        return current().model_dump(mode="json")

    @app.get("/jobs")
    async def list_jobs(
        active: Optional[bool] = Query(None, description="Filter by active flag"),
    ):
        tasks = current().tasks
        if active is not None:
            tasks = [t for t in tasks if t.active == active]
        return {
            "count": len(tasks),
            "jobs": [t.model_dump(mode="json") for t in tasks],
        }

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: int):
        task = current().get(job_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        return task.model_dump(mode="json")

    @app.get("/stats")
    async def stats():
        """Aggregate counters only."""
        snap = current()
        return {
            "generated_at": snap.generated_at.isoformat(),
            "total": snap.total_tasks,
            "active": snap.active_tasks,
            "completed": snap.completed_tasks,
            "succeeded": snap.successful_tasks,
            "failed": snap.failed_tasks,
        }

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the CLI's root signal."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class MonitorServer:
    """
    uvicorn server running inside the batch's event loop.

    Usage:
        server = MonitorServer(lambda: aggregator.latest, port=9876)
        server.start()
        ...
        await server.stop()
    """

    def __init__(self, source: SnapshotSource, port: int, host: Optional[str] = None):
        self.host = resolve_bind_host(host)
        self.port = port
        config = uvicorn.Config(
            create_monitor_app(source),
            host=self.host,
            port=port,
            log_level="warning",
            lifespan="off",
        )
        self._server = _EmbeddedServer(config)
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        logger.info(f"[Monitor] Serving read-only API on http://{self.host}:{self.port}")
        self._task = asyncio.create_task(self._serve(), name="monitor-api")
        return self._task

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except SystemExit:
            # uvicorn exits instead of raising when the port cannot be bound
            logger.error(f"[Monitor] Could not serve on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
