"""
PDF template endpoints.

Serves the canonical template, its field descriptors, and the rendered
overlay (page raster plus positioned form controls) for a report.
"""
import base64
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from formplay.core.auth import get_current_user
from formplay.core.config import settings
from formplay.core.deps import get_template_store, get_workflow
from formplay.core.exceptions import ValidationError
from formplay.core.logging import logger
from formplay.db.session import get_db
from formplay.models.user import User
from formplay.pdf import OverlaySession, parse_form, rasterize_page
from formplay.services.files import TemplateStore
from formplay.services.workflow import ReportWorkflow, can_write

router = APIRouter()


@router.get("/{key}")
async def get_template(
    key: str,
    current_user: User = Depends(get_current_user),
    templates: TemplateStore = Depends(get_template_store),
) -> Response:
    """Raw template bytes."""
    data = await run_in_threadpool(templates.get, key)
    return Response(content=data, media_type="application/pdf")


@router.get("/{key}/fields")
async def get_template_fields(
    key: str,
    current_user: User = Depends(get_current_user),
    templates: TemplateStore = Depends(get_template_store),
) -> Dict[str, Any]:
    """
    Field descriptors of a template.

    Args:
        key: Template key
        current_user: Current authenticated user
        templates: Template store

    Returns:
        Page geometry and one descriptor per widget
    """
    data = await run_in_threadpool(templates.get, key)
    form = await run_in_threadpool(parse_form, data)
    return {
        "key": key,
        "pages": [
            {"number": p.number, "width": p.width, "height": p.height}
            for p in form.pages
        ],
        "fields": [f.to_dict() for f in form.fields],
    }


@router.get("/{key}/overlay")
async def get_overlay(
    key: str,
    report_id: Optional[int] = Query(None, description="Report whose saved values pre-populate the form"),
    page: int = Query(1, ge=1),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    templates: TemplateStore = Depends(get_template_store),
    workflow: ReportWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Render one page of a template with its interactive overlay.

    Without ``report_id`` the overlay shows the template defaults and is
    editable. With it, saved values are applied and the overlay is
    read-only unless the current user owns the report's status.
    """
    data = await run_in_threadpool(templates.get, key)
    form = await run_in_threadpool(parse_form, data)
    if page > len(form.pages):
        raise ValidationError(f"Template '{key}' has {len(form.pages)} page(s)")

    saved_values: Dict[str, Any] = {}
    read_only = False
    if report_id is not None:
        report = await workflow.get_for_party(db, report_id, current_user.id)
        saved_values = (report.form_data or {}).get("fields", {})
        read_only = not can_write(report, current_user.id)

    surface = await run_in_threadpool(rasterize_page, data, page, settings.storage.render_scale)
    session = OverlaySession(form, surface, page_number=page, saved_values=saved_values, read_only=read_only)
    try:
        session.render()
        payload = session.to_dict()
    finally:
        session.close()

    logger.debug(f"Rendered overlay for '{key}' page {page} ({len(payload['elements'])} elements)")
    payload["image"] = base64.b64encode(surface.image or b"").decode("ascii")
    payload["mime_type"] = surface.mime_type
    return payload
