"""Run routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from outlight.database import get_db
from outlight.schemas.run import RunCreate, RunDetail, RunListResponse, RunSummary
from outlight.services.errors import PreconditionError, ReferenceNotFound, RunNotFound
from outlight.services.reference import resolve_reference_url
from outlight.services.registry import RunRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])


def get_registry(request: Request) -> RunRegistry:
    """Registry created at application startup."""
    return request.app.state.registry


def _lookup(registry: RunRegistry, run_id: uuid.UUID):
    try:
        return registry.get(run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Run not found")


@router.post("", response_model=RunSummary)
async def submit_run(
    data: RunCreate,
    db: Session = Depends(get_db),
    registry: RunRegistry = Depends(get_registry),
):
    """Resolve the reference image and start a run for the prompt batch."""
    try:
        reference_url = await run_in_threadpool(
            resolve_reference_url, db, data.product_id, data.custom_url
        )
        run = registry.submit(
            data.prompts,
            data.provider,
            reference_url,
            options=data.options,
            concurrency=data.concurrency,
        )
    except ReferenceNotFound as e:
        logger.warning(f"Rejected batch: {e}")
        raise HTTPException(status_code=404, detail=str(e))
    except PreconditionError as e:
        logger.warning(f"Rejected batch: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return run.summary()


@router.get("", response_model=RunListResponse)
async def list_runs(registry: RunRegistry = Depends(get_registry)):
    """List registered runs with the active selection."""
    return RunListResponse(
        runs=[r.summary() for r in registry.list_runs()],
        active_run_id=registry.active_run_id,
    )


@router.get("/{run_id}", response_model=RunDetail)
async def get_run(
    run_id: uuid.UUID,
    registry: RunRegistry = Depends(get_registry),
):
    """Get run status, progress and the outcomes so far."""
    return _lookup(registry, run_id).snapshot()


@router.post("/{run_id}/cancel", response_model=RunSummary)
async def cancel_run(
    run_id: uuid.UUID,
    registry: RunRegistry = Depends(get_registry),
):
    """Cancel a run. Cancelling a finished run changes nothing."""
    _lookup(registry, run_id)
    return registry.cancel(run_id).summary()


@router.post("/{run_id}/activate", response_model=RunListResponse)
async def activate_run(
    run_id: uuid.UUID,
    registry: RunRegistry = Depends(get_registry),
):
    """Select the run shown by the UI."""
    _lookup(registry, run_id)
    registry.activate(run_id)
    return await list_runs(registry)


@router.delete("/{run_id}")
async def delete_run(
    run_id: uuid.UUID,
    registry: RunRegistry = Depends(get_registry),
):
    """Remove a run, cancelling it first if it is still running."""
    _lookup(registry, run_id)
    registry.delete(run_id)

    return {"message": "Run deleted", "active_run_id": registry.active_run_id}
