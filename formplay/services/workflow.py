"""
Report workflow: the status state machine and its side effects.

    draft -> pending_review -> pending_approval -> completed
                           \\-> aborted          \\-> aborted

Only the party that owns the current status may write: the creator owns
``draft`` and ``pending_approval``, the receiver owns ``pending_review``.
Terminal reports are read-only to both; replication starts a new draft.

Every write follows the same order: conditional row update, log entry,
commit, then best-effort side effects (email, calendar, PDF snapshot).
Side-effect failures are logged and reported back as warnings; they never
undo a committed transition. A snapshot path is recorded only once the
snapshot file has been stored.

Template reads, PDF parsing and filling run in the thread pool.
"""

import base64
import binascii
import copy
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from formplay.core.calendar import CalendarService
from formplay.core.config import settings
from formplay.core.email import EmailService, body_for_status, subject_for_status
from formplay.core.exceptions import Conflict, Forbidden, NotFound, ParseError, Unavailable, ValidationError
from formplay.core.logging import logger
from formplay.models.log import LogAction, TpsLog
from formplay.models.report import ReportStatus, TpsReport
from formplay.models.user import User
from formplay.pdf.fields import OFF_STATE, FieldDescriptor, FieldType, extract_fields
from formplay.pdf.render import fill_form
from formplay.schemas.report import EmotionalState, FormData, FormMetadata, ReportCreate, ReportUpdate
from formplay.services.files import PdfSnapshotStore, TemplateStore
from formplay.services.store import ReportStore


class Role(str, Enum):
    CREATOR = "creator"
    RECEIVER = "receiver"


STATUS_OWNER: Dict[ReportStatus, Role] = {
    ReportStatus.DRAFT: Role.CREATOR,
    ReportStatus.PENDING_REVIEW: Role.RECEIVER,
    ReportStatus.PENDING_APPROVAL: Role.CREATOR,
}


@dataclass(frozen=True)
class Transition:
    source: ReportStatus
    target: ReportStatus
    actor: Role
    log_action: LogAction
    notify: Tuple[Role, ...]
    requires_initials: bool = False
    schedule_followup: bool = False


TRANSITIONS: Dict[Tuple[ReportStatus, ReportStatus], Transition] = {
    (t.source, t.target): t
    for t in (
        Transition(ReportStatus.DRAFT, ReportStatus.PENDING_REVIEW, Role.CREATOR,
                   LogAction.UPDATED, notify=(Role.RECEIVER,)),
        Transition(ReportStatus.PENDING_REVIEW, ReportStatus.PENDING_APPROVAL, Role.RECEIVER,
                   LogAction.APPROVED, notify=(Role.CREATOR,)),
        Transition(ReportStatus.PENDING_REVIEW, ReportStatus.ABORTED, Role.RECEIVER,
                   LogAction.DENIED, notify=(Role.CREATOR,)),
        Transition(ReportStatus.PENDING_APPROVAL, ReportStatus.COMPLETED, Role.CREATOR,
                   LogAction.APPROVED, notify=(Role.CREATOR, Role.RECEIVER),
                   requires_initials=True, schedule_followup=True),
        Transition(ReportStatus.PENDING_APPROVAL, ReportStatus.ABORTED, Role.CREATOR,
                   LogAction.DENIED, notify=(Role.RECEIVER,)),
    )
}

_OWNER_ONLY_MESSAGES = {
    ReportStatus.DRAFT: "Only the creator can edit a draft",
    ReportStatus.PENDING_REVIEW: "Only the receiver can review this report",
    ReportStatus.PENDING_APPROVAL: "Only the creator can approve this report",
}

# Columns each role may write, and the statuses in which they may do it.
_ROLE_COLUMNS: Dict[str, Tuple[Role, Tuple[ReportStatus, ...]]] = {
    "creator_notes": (Role.CREATOR, (ReportStatus.DRAFT, ReportStatus.PENDING_APPROVAL)),
    "creator_initials": (Role.CREATOR, (ReportStatus.PENDING_APPROVAL,)),
    "receiver_notes": (Role.RECEIVER, (ReportStatus.PENDING_REVIEW,)),
    "receiver_initials": (Role.RECEIVER, (ReportStatus.PENDING_REVIEW,)),
}


def role_of(report: TpsReport, user_id: int) -> Role:
    """Role of ``user_id`` on ``report``, decided by id comparison only."""
    if user_id == report.creator_id:
        return Role.CREATOR
    if user_id == report.receiver_id:
        return Role.RECEIVER
    raise Forbidden("Access denied to this report")


def owner_of(status: ReportStatus) -> Optional[Role]:
    """The role allowed to write in ``status``; None for terminal statuses."""
    return STATUS_OWNER.get(status)


def authorize_write(report: TpsReport, user_id: int) -> Role:
    """
    Check that ``user_id`` may write to ``report`` in its current status.

    Raises:
        Forbidden: If the user is not a party, the report is terminal,
            or the user's role does not own the current status
    """
    role = role_of(report, user_id)
    status = report.status_enum
    if status.is_terminal:
        raise Forbidden("This report is already finalized")
    if owner_of(status) != role:
        raise Forbidden(_OWNER_ONLY_MESSAGES[status])
    return role


def can_write(report: TpsReport, user_id: int) -> bool:
    try:
        authorize_write(report, user_id)
    except Forbidden:
        return False
    return True


def resolve_transition(source: ReportStatus, target: ReportStatus) -> Optional[Transition]:
    """
    Look up the transition from ``source`` to ``target``.

    Returns None when the status does not change (a plain save).

    Raises:
        ValidationError: If the move is not in the transition table
    """
    if source == target:
        return None
    transition = TRANSITIONS.get((source, target))
    if transition is None:
        raise ValidationError(
            f"Cannot move a report from {source.value} to {target.value}"
        )
    return transition


def check_field_values(values: Mapping[str, Any], descriptors: List[FieldDescriptor]) -> None:
    """
    Validate ``form_data.fields`` against the template's fields.

    Raises:
        ValidationError: On unknown names or values a field cannot hold
    """
    by_name = {d.name: d for d in descriptors}
    unknown = sorted(set(values) - set(by_name))
    if unknown:
        raise ValidationError(f"Unknown form fields: {', '.join(unknown)}")

    for name, value in values.items():
        descriptor = by_name[name]
        if descriptor.type == FieldType.TEXT:
            if not isinstance(value, str):
                raise ValidationError(f"Field '{name}' expects text")
            if descriptor.max_length is not None and len(value) > descriptor.max_length:
                raise ValidationError(f"Field '{name}' is limited to {descriptor.max_length} characters")
        elif descriptor.type == FieldType.CHECKBOX:
            allowed = {"", OFF_STATE, descriptor.export_value or "Yes"}
            if not isinstance(value, bool) and value not in allowed:
                raise ValidationError(f"Field '{name}' expects its export value or Off")
        elif descriptor.type == FieldType.CHOICE:
            choices = [value] if isinstance(value, str) else value
            if not isinstance(choices, list) or any(c not in descriptor.options and c != "" for c in choices):
                raise ValidationError(f"Field '{name}' expects one of its options")


def _decode_pdf(data: Optional[str]) -> Optional[bytes]:
    if data is None:
        return None
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("pdf_data is not valid base64") from e
    if not raw.startswith(b"%PDF"):
        raise ValidationError("pdf_data is not a PDF document")
    return raw


class ReportWorkflow:
    """Service class for report lifecycle operations."""

    def __init__(
        self,
        notifier: Optional[EmailService] = None,
        calendar: Optional[CalendarService] = None,
        snapshots: Optional[PdfSnapshotStore] = None,
        templates: Optional[TemplateStore] = None,
        template_key: Optional[str] = None,
        validate_fields: Optional[bool] = None,
        today: Callable[[], date] = date.today,
    ):
        self.notifier = notifier or EmailService()
        self.calendar = calendar or CalendarService()
        self.snapshots = snapshots or PdfSnapshotStore()
        self.templates = templates or TemplateStore()
        self.template_key = template_key or settings.storage.default_template_key
        self.validate_fields = settings.validate_form_fields if validate_fields is None else validate_fields
        self.today = today

    # Validation

    async def _template_fields(self) -> Optional[List[FieldDescriptor]]:
        """Descriptors parsed fresh from the template, or None when no template is installed."""
        try:
            data = await run_in_threadpool(self.templates.get, self.template_key)
        except NotFound:
            logger.debug(f"Template '{self.template_key}' not installed, skipping field validation")
            return None
        return await run_in_threadpool(extract_fields, data)

    async def _check_fields(self, incoming: Optional[FormData]) -> None:
        if not self.validate_fields or incoming is None or not incoming.fields:
            return
        descriptors = await self._template_fields()
        if descriptors is not None:
            check_field_values(incoming.fields, descriptors)

    def _merge_form_data(self, stored: Optional[Mapping[str, Any]], incoming: FormData, role: Role) -> Dict[str, Any]:
        """
        Merge an incoming form_data payload over the stored one.

        Field values and display overrides come from the payload. The
        per-role emotional state and notes are only taken from the acting
        role's own slot; the other party's slot keeps its stored value.
        """
        previous = FormData.model_validate(stored) if stored else FormData()
        metadata = incoming.metadata
        if role == Role.CREATOR:
            emotional = EmotionalState(
                creator=metadata.emotional_state.creator,
                receiver=previous.metadata.emotional_state.receiver,
            )
            creator_notes, receiver_notes = metadata.creator_notes, previous.metadata.receiver_notes
        else:
            emotional = EmotionalState(
                creator=previous.metadata.emotional_state.creator,
                receiver=metadata.emotional_state.receiver,
            )
            creator_notes, receiver_notes = previous.metadata.creator_notes, metadata.receiver_notes

        merged = FormData(
            fields=incoming.fields,
            metadata=FormMetadata(
                emotional_state=emotional,
                creator_notes=creator_notes,
                receiver_notes=receiver_notes,
                display=metadata.display,
            ),
        )
        return merged.model_dump(mode="json")

    def _content_changes(self, report: TpsReport, role: Role, payload: ReportUpdate) -> Dict[str, Any]:
        data = payload.model_dump(exclude_unset=True, exclude={"status", "version", "pdf_data", "form_data"})
        status = report.status_enum

        for column in list(data):
            if column not in _ROLE_COLUMNS:
                continue
            allowed_role, allowed_statuses = _ROLE_COLUMNS[column]
            if role != allowed_role or status not in allowed_statuses:
                raise ValidationError(f"{column} cannot be set by the {role.value} while the report is {status.value}")

        if "date" in data and data["date"] is None:
            raise ValidationError("date cannot be cleared")

        if payload.form_data is not None:
            data["form_data"] = self._merge_form_data(report.form_data, payload.form_data, role)
        return data

    # Operations

    async def create(
        self,
        db: AsyncSession,
        actor_id: int,
        payload: ReportCreate,
    ) -> Tuple[TpsReport, List[str]]:
        """
        Create a draft addressed to the actor's partner.

        With ``payload.submit`` the draft is moved to pending_review in the
        same commit.

        Returns:
            The report and any side-effect warnings
        """
        user, partner = await ReportStore.get_user_with_partner(db, actor_id)
        if user.id == partner.id:
            raise ValidationError("A report needs two different parties")

        snapshot = _decode_pdf(payload.pdf_data)
        await self._check_fields(payload.form_data)
        form_data = self._merge_form_data(None, payload.form_data, Role.CREATOR)
        values = payload.model_dump(exclude={"submit", "pdf_data", "form_data", "date"})
        values.update(
            creator_id=user.id,
            receiver_id=partner.id,
            status=ReportStatus.DRAFT.value,
            date=payload.date or self.today(),
            form_data=form_data,
        )

        transition = None
        try:
            report = await ReportStore.create_report(db, values)
            await ReportStore.append_log(db, report.id, user.id, LogAction.CREATED,
                                         {"status": ReportStatus.DRAFT})
            if payload.submit:
                transition = TRANSITIONS[(ReportStatus.DRAFT, ReportStatus.PENDING_REVIEW)]
                report = await ReportStore.update_report(
                    db, report.id, {"status": transition.target.value}, ReportStatus.DRAFT, report.version
                )
                await ReportStore.append_log(db, report.id, user.id, transition.log_action,
                                             {"status": transition.target, "from": transition.source})
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        report = await ReportStore.get_report(db, report.id)
        logger.info(f"Report {report.id} created by user {user.id} (status={report.status})")
        return await self._side_effects(db, report, transition, snapshot)

    async def view(self, db: AsyncSession, report_id: int, actor_id: int) -> TpsReport:
        """Fetch a report for one of its parties and record the view."""
        report = await ReportStore.get_report(db, report_id)
        role_of(report, actor_id)
        await ReportStore.append_log(db, report.id, actor_id, LogAction.VIEWED, {"status": report.status})
        await db.commit()
        return report

    async def update(
        self,
        db: AsyncSession,
        report_id: int,
        actor_id: int,
        payload: ReportUpdate,
    ) -> Tuple[TpsReport, List[str]]:
        """
        Save content and optionally move the report to ``payload.status``.

        Raises:
            NotFound: Unknown report
            Forbidden: Actor may not write in the current status
            ValidationError: Transition not allowed or payload inconsistent with it
            Conflict: The report changed since the actor read it
        """
        report = await ReportStore.get_report(db, report_id)
        role_of(report, actor_id)
        source = report.status_enum

        # A stale writer loses the race even if ownership has moved on since.
        if payload.version is not None and payload.version != report.version and not source.is_terminal:
            logger.warning(
                f"User {actor_id} wrote report {report_id} from version {payload.version}, "
                f"current is {report.version}"
            )
            raise Conflict()
        role = authorize_write(report, actor_id)
        expected_version = report.version

        transition = resolve_transition(source, payload.status or source)
        await self._check_fields(payload.form_data)
        changes = self._content_changes(report, role, payload)
        snapshot = _decode_pdf(payload.pdf_data)

        if transition is not None:
            if transition.requires_initials and not (changes.get("creator_initials") or report.creator_initials):
                raise ValidationError("Initials are required to complete this report")
            changes["status"] = transition.target.value
        if not changes and snapshot is None:
            raise ValidationError("Nothing to update")

        target = transition.target if transition else source
        try:
            report = await ReportStore.update_report(db, report.id, changes, source, expected_version)
            details = {"status": target, "changed": sorted(k for k in changes if k != "status")}
            if transition is not None:
                details["from"] = source
            if snapshot is not None:
                details["snapshot"] = True
            await ReportStore.append_log(
                db, report.id, actor_id,
                transition.log_action if transition else LogAction.UPDATED,
                details,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        report = await ReportStore.get_report(db, report.id)
        logger.info(
            f"Report {report.id} updated by user {actor_id}: {source.value} -> {report.status}"
        )
        return await self._side_effects(db, report, transition, snapshot)

    async def replicate(self, db: AsyncSession, report_id: int, actor_id: int) -> TpsReport:
        """
        Start a new draft from a completed or aborted report.

        The copy keeps both parties and all content, resets the date to
        today and clears emotional state, notes, initials and the snapshot.
        """
        original = await ReportStore.get_report(db, report_id)
        role_of(original, actor_id)
        if not original.status_enum.is_terminal:
            raise ValidationError("Only completed or aborted reports can be replicated")

        form_data = FormData.model_validate(copy.deepcopy(original.form_data or {}))
        form_data.metadata.emotional_state = EmotionalState()
        form_data.metadata.creator_notes = ""
        form_data.metadata.receiver_notes = ""

        values = {
            "creator_id": original.creator_id,
            "receiver_id": original.receiver_id,
            "status": ReportStatus.DRAFT.value,
            "date": self.today(),
            "time_start": original.time_start,
            "time_end": original.time_end,
            "location": original.location,
            "location_other": original.location_other,
            "sound": original.sound,
            "form_data": form_data.model_dump(mode="json"),
            "creator_notes": None,
            "receiver_notes": None,
            "creator_initials": None,
            "receiver_initials": None,
            "replicated_from_id": original.id,
            "pdf_path": None,
        }

        try:
            report = await ReportStore.create_report(db, values)
            await ReportStore.append_log(db, report.id, actor_id, LogAction.CREATED,
                                         {"status": ReportStatus.DRAFT, "replicated_from_id": original.id})
            await ReportStore.append_log(db, report.id, actor_id, LogAction.REPLICATED,
                                         {"status": ReportStatus.DRAFT, "original_id": original.id})
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Report {original.id} replicated as {report.id} by user {actor_id}")
        return await ReportStore.get_report(db, report.id)

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: int,
        status: Optional[ReportStatus] = None,
    ) -> List[TpsReport]:
        return await ReportStore.list_by_user(db, user_id, status)

    async def get_for_party(self, db: AsyncSession, report_id: int, actor_id: int) -> TpsReport:
        """Fetch a report, refusing anyone but its two parties. Nothing is logged."""
        report = await ReportStore.get_report(db, report_id)
        role_of(report, actor_id)
        return report

    async def logs(self, db: AsyncSession, report_id: int, actor_id: int) -> List[TpsLog]:
        await self.get_for_party(db, report_id, actor_id)
        return await ReportStore.list_logs(db, report_id)

    async def stats(self, db: AsyncSession, user_id: int) -> Dict[str, int]:
        return await ReportStore.count_for_user(db, user_id)

    # Side effects

    async def _side_effects(
        self,
        db: AsyncSession,
        report: TpsReport,
        transition: Optional[Transition],
        snapshot: Optional[bytes],
    ) -> Tuple[TpsReport, List[str]]:
        warnings: List[str] = []
        parties: Dict[Role, User] = {Role.CREATOR: report.creator, Role.RECEIVER: report.receiver}

        if transition is not None:
            subject = subject_for_status(transition.target.value, report.creator_name, report.receiver_name)
            body = body_for_status(transition.target.value, report.creator_name, report.receiver_name)
            for role in transition.notify:
                recipient = parties[role]
                try:
                    await run_in_threadpool(self.notifier.send, recipient.email, subject, body)
                except Unavailable as e:
                    logger.error(f"Notification for report {report.id} to user {recipient.id} failed: {e.detail}")
                    warnings.append(e.detail)

            if transition.schedule_followup:
                event = self.calendar.review_event(report.id, report.location)
                for user in parties.values():
                    try:
                        await run_in_threadpool(self.calendar.add_event, user.id, event)
                    except Unavailable as e:
                        logger.error(f"Calendar event for report {report.id}, user {user.id} failed: {e.detail}")
                        warnings.append(e.detail)

                if snapshot is None:
                    try:
                        snapshot = await run_in_threadpool(self._filled_snapshot, report)
                    except Unavailable as e:
                        logger.warning(f"No completion snapshot for report {report.id}: {e.detail}")
                        warnings.append(e.detail)

        if snapshot is not None:
            try:
                stored_path = await run_in_threadpool(self.snapshots.save, report.id, snapshot)
            except Unavailable as e:
                logger.error(f"Snapshot for report {report.id} failed: {e.detail}")
                warnings.append(e.detail)
            else:
                try:
                    report = await ReportStore.record_snapshot(db, report.id, stored_path)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

        return report, warnings

    def _filled_snapshot(self, report: TpsReport) -> Optional[bytes]:
        """Fill the template with the report's field values."""
        try:
            template = self.templates.get(self.template_key)
            return fill_form(template, (report.form_data or {}).get("fields", {}))
        except NotFound:
            logger.debug(f"Template '{self.template_key}' not installed, no snapshot for report {report.id}")
            return None
        except ParseError as e:
            raise Unavailable(f"Snapshot for report {report.id} could not be generated") from e
