"""
Pydantic schemas for TPS reports.

This module defines the request and response schemas for report-related
API endpoints. ``form_data`` is no longer an open mapping: field values are
restricted to strings, booleans and string arrays, and the auxiliary
metadata block has a fixed shape.
"""

from typing import Dict, Any, Optional, List, Union
from datetime import date as date_type, datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

from formplay.models.report import ReportStatus

FieldValue = Union[StrictBool, StrictStr, List[StrictStr]]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class EmotionalState(BaseModel):
    """Per-role emotional state, keyed by role rather than by user name."""

    model_config = ConfigDict(extra="forbid")

    creator: str = ""
    receiver: str = ""


class FormMetadata(BaseModel):
    """Auxiliary values that have no counterpart in the PDF itself."""

    model_config = ConfigDict(extra="forbid")

    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    creator_notes: str = ""
    receiver_notes: str = ""
    display: Dict[str, str] = Field(default_factory=dict)


class FormData(BaseModel):
    """Values of the PDF form fields plus report metadata."""

    model_config = ConfigDict(extra="forbid")

    fields: Dict[str, FieldValue] = Field(default_factory=dict)
    metadata: FormMetadata = Field(default_factory=FormMetadata)


class ReportContent(BaseModel):
    """Content columns shared by create and update payloads."""

    model_config = ConfigDict(extra="forbid")

    time_start: Optional[str] = Field(None, pattern=TIME_PATTERN)
    time_end: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, max_length=100)
    location_other: Optional[str] = Field(None, max_length=255)
    sound: Optional[str] = Field(None, max_length=100)
    creator_notes: Optional[str] = Field(None, max_length=2000)
    pdf_data: Optional[str] = Field(None, description="Base64 encoded filled PDF snapshot")


class ReportCreate(ReportContent):
    """Schema for creating a new report. The receiver is always the creator's partner."""

    date: Optional[date_type] = None
    form_data: FormData = Field(default_factory=FormData)
    submit: bool = Field(False, description="Submit for review right after creation")


class ReportUpdate(ReportContent):
    """
    Schema for saving or transitioning an existing report.

    Leaving ``status`` unset (or equal to the current status) saves content
    only. ``version`` is the version the client last saw; when given, the
    write fails with 409 if someone else wrote in between.
    """

    status: Optional[ReportStatus] = None
    version: Optional[int] = Field(None, ge=1)
    date: Optional[date_type] = None
    form_data: Optional[FormData] = None
    receiver_notes: Optional[str] = Field(None, max_length=2000)
    creator_initials: Optional[str] = Field(None, min_length=1, max_length=10)
    receiver_initials: Optional[str] = Field(None, min_length=1, max_length=10)


class Report(BaseModel):
    """Schema for report response data."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
    creator_id: int
    receiver_id: int
    creator_name: str
    receiver_name: str
    status: ReportStatus
    version: int
    date: date_type
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    location: Optional[str] = None
    location_other: Optional[str] = None
    sound: Optional[str] = None
    form_data: Dict[str, Any]
    creator_notes: Optional[str] = None
    receiver_notes: Optional[str] = None
    creator_initials: Optional[str] = None
    receiver_initials: Optional[str] = None
    replicated_from_id: Optional[int] = None
    pdf_path: Optional[str] = None


class ReportMutation(Report):
    """Report after a write, plus any best-effort side effects that failed."""

    warnings: List[str] = Field(default_factory=list)


class ReportLog(BaseModel):
    """Schema for one audit trail entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    tps_id: int
    user_id: int
    user_name: str
    action: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime


class ReportStats(BaseModel):
    """Aggregate counts for the current user's reports."""

    pending: int
    completed: int
    aborted: int
