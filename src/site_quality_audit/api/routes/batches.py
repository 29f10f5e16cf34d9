"""Batch trigger, progress and worker callback endpoints."""

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from ...batch.coordinator import BatchCoordinator
from ...batch.store import BatchStore
from ...core.types import AllPublishersScope, BatchProgress, JobView
from ..deps import get_batch_store, get_coordinator
from ..schemas import ErrorResponse, JobStatusUpdate, MultiSiteRequest, TriggerResponse
from ..security import require_operator, require_worker

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@router.post(
    "/trigger-all-publisher-audits",
    response_model=TriggerResponse,
    responses=_ERRORS,
)
async def trigger_all_publisher_audits(
    request: Request,
    claims: Annotated[dict[str, Any], Depends(require_operator)],
    coordinator: Annotated[BatchCoordinator, Depends(get_coordinator)],
) -> TriggerResponse:
    """
    Queue audits for every site of every eligible publisher.

    Publishers are dispatched one at a time with a randomized pause in
    between, so the call takes several seconds per publisher. A publisher
    whose dispatch fails is reported in ``results``; it never fails the call.
    """
    logger.info(f"Trigger-all requested by {claims.get('sub')}")
    summary = await coordinator.trigger_batch(AllPublishersScope(), request_id=_request_id(request))
    return TriggerResponse.from_summary(summary)


@router.post("/batches", response_model=TriggerResponse, responses=_ERRORS)
async def create_batch(
    request: Request,
    body: MultiSiteRequest,
    claims: Annotated[dict[str, Any], Depends(require_operator)],
    coordinator: Annotated[BatchCoordinator, Depends(get_coordinator)],
) -> TriggerResponse:
    """Queue audits for an explicit list of one publisher's sites."""
    summary = await coordinator.trigger_batch(body.to_scope(), request_id=_request_id(request))
    return TriggerResponse.from_summary(summary)


@router.get("/batches", response_model=list[BatchProgress])
async def list_batches(
    claims: Annotated[dict[str, Any], Depends(require_operator)],
    store: Annotated[BatchStore, Depends(get_batch_store)],
    limit: int = Query(20, ge=1, le=100),
) -> list[BatchProgress]:
    """Most recent batches, newest first."""
    return await store.list_batches(limit)


@router.get(
    "/batches/{batch_id}",
    response_model=BatchProgress,
    responses={404: {"model": ErrorResponse}},
)
async def get_batch(
    batch_id: UUID,
    claims: Annotated[dict[str, Any], Depends(require_operator)],
    store: Annotated[BatchStore, Depends(get_batch_store)],
) -> BatchProgress:
    """Aggregate progress of one batch."""
    return await store.get_batch(batch_id)


@router.get(
    "/batches/{batch_id}/jobs",
    response_model=list[JobView],
    responses={404: {"model": ErrorResponse}},
)
async def list_batch_jobs(
    batch_id: UUID,
    claims: Annotated[dict[str, Any], Depends(require_operator)],
    store: Annotated[BatchStore, Depends(get_batch_store)],
) -> list[JobView]:
    """Per-site jobs of one batch."""
    return await store.list_jobs(batch_id)


@router.post(
    "/jobs/{job_id}/status",
    response_model=JobView,
    status_code=status.HTTP_200_OK,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def update_job_status(
    job_id: UUID,
    update: JobStatusUpdate,
    _: Annotated[None, Depends(require_worker)],
    store: Annotated[BatchStore, Depends(get_batch_store)],
) -> JobView:
    """Worker callback reporting progress or the result of one site audit."""
    return await store.update_job_status(
        job_id,
        update.status,
        score=update.score,
        error_message=update.error_message,
    )
