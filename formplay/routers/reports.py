"""
Report API endpoints.
This module exposes the report lifecycle: create, read, save, transition,
replicate, and the audit trail.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from formplay.core.auth import get_current_user
from formplay.core.deps import get_workflow
from formplay.core.logging import logger
from formplay.db.session import get_db
from formplay.models.report import ReportStatus, TpsReport
from formplay.models.user import User
from formplay.schemas.report import (
    Report,
    ReportCreate,
    ReportLog,
    ReportMutation,
    ReportStats,
    ReportUpdate,
)
from formplay.services.workflow import ReportWorkflow

router = APIRouter()


def _mutation(report: TpsReport, warnings: List[str]) -> ReportMutation:
    return ReportMutation(**Report.model_validate(report).model_dump(), warnings=warnings)


@router.get("", response_model=List[Report])
async def list_reports(
    status_filter: Optional[ReportStatus] = Query(None, alias="status", description="Only reports in this status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    """Reports where the current user is creator or receiver, most recently updated first."""
    return await workflow.list_for_user(db, current_user.id, status_filter)


@router.post("", response_model=ReportMutation, status_code=status.HTTP_201_CREATED)
async def create_report(
    report_in: ReportCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    """
    Create a report addressed to the current user's partner.

    Args:
        report_in: Report content; ``submit`` sends it for review immediately
        db: Database session
        current_user: Current authenticated user
        workflow: Report workflow

    Returns:
        Created report and any side-effect warnings
    """
    logger.info(f"Report creation requested by: {current_user.username}")
    report, warnings = await workflow.create(db, current_user.id, report_in)
    return _mutation(report, warnings)


@router.get("/stats", response_model=ReportStats)
async def report_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    return await workflow.stats(db, current_user.id)


@router.get("/{report_id}", response_model=Report)
async def get_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    """Fetch a report. Each successful fetch is recorded as a view."""
    return await workflow.view(db, report_id, current_user.id)


@router.put("/{report_id}", response_model=ReportMutation)
async def update_report(
    report_id: int,
    report_in: ReportUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    """
    Save a report and optionally move it to a new status.

    Args:
        report_id: Report ID
        report_in: Changes, target ``status`` and the ``version`` the client last saw
        db: Database session
        current_user: Current authenticated user
        workflow: Report workflow

    Returns:
        Updated report and any side-effect warnings
    """
    report, warnings = await workflow.update(db, report_id, current_user.id, report_in)
    return _mutation(report, warnings)


@router.post("/{report_id}/replicate", response_model=Report, status_code=status.HTTP_201_CREATED)
async def replicate_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    """Start a new draft from a completed or aborted report."""
    return await workflow.replicate(db, report_id, current_user.id)


@router.get("/{report_id}/logs", response_model=List[ReportLog])
async def report_logs(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Any:
    return await workflow.logs(db, report_id, current_user.id)


@router.get("/{report_id}/pdf")
async def report_pdf(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Response:
    """The stored PDF snapshot of a report."""
    await workflow.get_for_party(db, report_id, current_user.id)
    data = await run_in_threadpool(workflow.snapshots.retrieve, report_id)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="tps_report_{report_id}.pdf"'},
    )
