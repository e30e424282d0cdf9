"""
Scheduler routes: admin operations on scheduled generation jobs.

Handlers are coroutines so store access stays on the event-loop thread that
also runs the generation workers.
"""
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..auth import get_admin_user
from ..models.scheduled_job import ScheduledJob
from ..models.user import User
from ..responses import paginated, success
from ..scheduler.service import GenerationService
from ..schemas.scheduled_job import (
    AutoGenerationToggle,
    BulkActionRequest,
    GenerateNowRequest,
    ScheduledJobCreate,
    ScheduledJobResponse,
    ScheduledJobUpdate,
    to_naive_utc,
)

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def job_to_dict(job: ScheduledJob) -> dict:
    return ScheduledJobResponse.model_validate(job).model_dump(mode="json")


@router.get("/jobs")
async def list_jobs(
    status: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """List jobs ordered by scheduled time, optionally filtered by status and window."""
    jobs, total = service.list_jobs(
        status=status,
        start=to_naive_utc(start),
        end=to_naive_utc(end),
        page=page,
        per_page=per_page,
    )
    return paginated([job_to_dict(j) for j in jobs], total, page, per_page)


@router.post("/jobs", status_code=201)
async def create_job(
    data: ScheduledJobCreate,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    job = service.create_job(
        data.title,
        data.scheduled_for,
        content=data.content,
        theme_id=data.theme_id,
    )
    return success(job_to_dict(job), message="Job scheduled")


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: int,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    return success(job_to_dict(service.get_job(job_id)))


@router.patch("/jobs/{job_id}")
async def update_job(
    job_id: int,
    data: ScheduledJobUpdate,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Edit an open job. Jobs that left scheduled/pending are immutable."""
    job = service.update_job(job_id, data.model_dump(exclude_unset=True))
    return success(job_to_dict(job), message="Job updated")


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(
    job_id: int,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    job = service.cancel_job(job_id)
    return success(job_to_dict(job), message="Job cancelled")


@router.post("/jobs/{job_id}/generate", status_code=202)
async def generate_job_now(
    job_id: int,
    wait: bool = False,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Queue a job now instead of at its scheduled time."""
    job = await service.generate_now(job_id, wait=wait)
    return success(job_to_dict(job), message="Generation started")


@router.post("/jobs/{job_id}/retry", status_code=202)
async def retry_job(
    job_id: int,
    wait: bool = False,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Reprocess a failed job from scratch."""
    job = await service.retry_job(job_id, wait=wait)
    return success(job_to_dict(job), message="Retry started")


@router.post("/generate", status_code=202)
async def generate_immediately(
    data: GenerateNowRequest,
    wait: bool = False,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Create a job for right now and dispatch it."""
    job = await service.generate_immediately(
        title=data.title,
        content=data.content,
        theme_id=data.theme_id,
        wait=wait,
    )
    return success(job_to_dict(job), message="Generation started")


@router.post("/bulk-action")
async def bulk_action(
    data: BulkActionRequest,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Generate or cancel several jobs; per-job refusals are reported, not raised."""
    result = await service.bulk_action(data.action, data.job_ids)
    return success(result, message=f"{result['succeeded']} of {len(set(data.job_ids))} jobs updated")


@router.post("/process")
async def process_due_jobs(
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Run one scheduler tick immediately."""
    result = await service.process_due()
    data = asdict(result)
    data["at"] = result.at.isoformat()
    return success(data)


@router.get("/status")
async def scheduler_status(
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    return success(service.status())


@router.get("/upcoming")
async def upcoming_jobs(
    limit: int = Query(10, ge=1, le=100),
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    return success([job_to_dict(j) for j in service.upcoming(limit)])


@router.put("/auto-generation")
async def set_auto_generation(
    data: AutoGenerationToggle,
    service: GenerationService = Depends(get_generation_service),
    current_user: User = Depends(get_admin_user),
):
    """Turn automatic slot generation on or off; takes effect from the next tick."""
    enabled = service.set_auto_generation(data.enabled)
    return success(
        {"auto_generation_enabled": enabled},
        message=f"Automatic generation {'enabled' if enabled else 'disabled'}",
    )
