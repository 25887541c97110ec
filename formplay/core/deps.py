"""
Dependencies for FastAPI endpoints.

Collaborators are built per request so that tests can swap them through
``app.dependency_overrides``.
"""

from formplay.core.calendar import CalendarService
from formplay.core.email import EmailService
from formplay.services.files import PdfSnapshotStore, TemplateStore
from formplay.services.workflow import ReportWorkflow


def get_template_store() -> TemplateStore:
    return TemplateStore()


def get_workflow() -> ReportWorkflow:
    """The report workflow wired to the configured email, calendar and file stores."""
    return ReportWorkflow(
        notifier=EmailService(),
        calendar=CalendarService(),
        snapshots=PdfSnapshotStore(),
        templates=TemplateStore(),
    )
