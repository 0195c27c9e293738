"""
HTTP API for the build scheduler.

The server owns the scheduler: the lifespan handler wires it from the
environment and starts its polling loop, and the endpoints let operators
and webhooks trigger polling cycles, request or cancel builds and manage
target branches.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from fleet_common.errors import ConfigurationError, VCSError
from fleet_common.log import configure_logging
from fleet_common.models import AdmissionOutcome, BuildOptions
from fleet_common.settings import Settings
from fleet_controller.bootstrap import Components, create_components

logger = logging.getLogger(__name__)

# Global instance (initialized at startup)
components: Components | None = None


class BuildRequest(BaseModel):
    skip_notifier: bool = False
    skip_cdn: bool = False
    fetch_repo: bool = False
    map_switch: str | bool = False


class BranchRequest(BaseModel):
    branch: str


class MapRequest(BaseModel):
    map: str
    build: bool = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Wire the scheduler from FLEET_* settings and start polling
    - Shutdown: Stop polling (running builds are left to finish)
    """
    global components

    settings = Settings.from_env()
    components = create_components(settings)
    await components.scheduler.start()

    yield

    if components:
        await components.scheduler.stop()


app = FastAPI(lifespan=lifespan)


def get_components() -> Components:
    """
    Get the global scheduler components.

    Raises:
        RuntimeError: If the scheduler is not initialized
    """
    if components is None:
        raise RuntimeError("Scheduler not initialized")
    return components


def require_target(target_id: str, comps: Components) -> None:
    """Raise 404 unless the target is configured."""
    try:
        comps.config_loader.get(target_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/jobs")
async def list_jobs(comps: Components = Depends(get_components)) -> dict[str, Any]:
    """Return the active builds and the queued requests."""
    snapshot = comps.registry.snapshot()
    snapshot["polling"] = comps.scheduler.running
    return snapshot


@app.post("/run")
async def trigger_cycle(comps: Components = Depends(get_components)) -> dict[str, Any]:
    """
    Run one polling cycle now.

    Intended for push webhooks and cron jobs; the timer keeps running.
    """
    submitted = await comps.scheduler.run_cycle()
    return {"submitted": submitted}


@app.post("/targets/{target_id}/build")
async def build_target(
    target_id: str,
    request: BuildRequest | None = None,
    comps: Components = Depends(get_components),
) -> dict[str, str]:
    """
    Request a build of a target.

    Raises:
        HTTPException: 404 if the target is not configured
        HTTPException: 409 if the request was refused (capacity or held tree)
        HTTPException: 500 if the build failed to start
    """
    require_target(target_id, comps)

    options = BuildOptions.from_dict(request.model_dump() if request else None)
    outcome = comps.registry.build(target_id, options)

    if outcome is AdmissionOutcome.REJECTED:
        raise HTTPException(
            status_code=409, detail=f"Build for {target_id} refused, try again later"
        )
    if outcome is AdmissionOutcome.FAILED:
        raise HTTPException(
            status_code=500, detail=f"Build for {target_id} failed to start"
        )

    return {"target_id": target_id, "outcome": outcome.value}


@app.post("/targets/{target_id}/cancel")
async def cancel_build(
    target_id: str, comps: Components = Depends(get_components)
) -> dict[str, str]:
    """Cancel the running build of a target."""
    if not comps.registry.cancel(target_id):
        raise HTTPException(status_code=404, detail=f"No build running for {target_id}")
    return {"target_id": target_id, "status": "cancelling"}


@app.get("/targets/{target_id}/branch")
async def get_branch(
    target_id: str, comps: Components = Depends(get_components)
) -> dict[str, str]:
    """Return the branch checked out for a target."""
    try:
        branch = await comps.vcs.get_branch(target_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except VCSError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"target_id": target_id, "branch": branch}


@app.post("/targets/{target_id}/branch")
async def switch_branch(
    target_id: str,
    request: BranchRequest,
    comps: Components = Depends(get_components),
) -> dict[str, str]:
    """
    Check out another branch in a target's working tree.

    Raises:
        HTTPException: 409 while the target is building
    """
    require_target(target_id, comps)

    try:
        with comps.registry.hold(target_id):
            await comps.vcs.switch_branch(target_id, request.branch)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except VCSError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"target_id": target_id, "branch": request.branch}


@app.post("/targets/{target_id}/map")
async def set_map(
    target_id: str,
    request: MapRequest,
    comps: Components = Depends(get_components),
) -> dict[str, str]:
    """Set the map override of a target, optionally building it right away."""
    require_target(target_id, comps)

    try:
        comps.vcs.set_map_override(target_id, request.map)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))

    result = {"target_id": target_id, "map": request.map.upper()}
    if request.build:
        outcome = comps.registry.build(
            target_id, BuildOptions(map_switch=request.map)
        )
        result["outcome"] = outcome.value
    return result


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = Settings.from_env()
    configure_logging(os.environ.get("FLEET_LOG_LEVEL", "INFO"), settings.log_file)
    uvicorn.run(
        app,
        host=os.environ.get("FLEET_HOST", "127.0.0.1"),
        port=int(os.environ.get("FLEET_PORT", "8000")),
        log_config=None,
    )
