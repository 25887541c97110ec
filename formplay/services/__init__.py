"""
Services package initialization.

This module imports all services to make them available from a single import point.
"""

from formplay.services.files import PdfSnapshotStore, TemplateStore
from formplay.services.store import ReportStore
from formplay.services.workflow import ReportWorkflow

__all__ = ["ReportStore", "ReportWorkflow", "TemplateStore", "PdfSnapshotStore"]
