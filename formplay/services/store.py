"""
Persistence operations for users, reports and report logs.

Store methods add and flush but never commit: the caller commits once so a
report write and its log entry land together or not at all.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession

from formplay.core.exceptions import Conflict, Forbidden, NotFound
from formplay.core.logging import logger
from formplay.models.log import LogAction, TpsLog
from formplay.models.report import PENDING_STATUSES, TERMINAL_STATUSES, ReportStatus, TpsReport
from formplay.models.user import User
from formplay.utils import make_json_serializable

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]
_PENDING_VALUES = [s.value for s in PENDING_STATUSES]


class ReportStore:
    """Service class for report persistence."""

    # Users

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    @staticmethod
    async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalars().first()

    @staticmethod
    async def get_user_with_partner(db: AsyncSession, user_id: int) -> Tuple[User, User]:
        """
        Get a user together with their fixed partner.

        Raises:
            NotFound: If the user does not exist or has no partner configured
        """
        user = await ReportStore.get_user(db, user_id)
        if user.partner_id is None:
            raise NotFound("User or partner not found")
        partner = await db.get(User, user.partner_id)
        if partner is None:
            raise NotFound("User or partner not found")
        return user, partner

    # Reports

    @staticmethod
    async def create_report(db: AsyncSession, values: Dict[str, Any]) -> TpsReport:
        """
        Insert a report row.

        Args:
            db: Database session
            values: Column values; ``status`` defaults to draft

        Returns:
            The new report, flushed but not committed
        """
        report = TpsReport(**values)
        report.version = 1
        db.add(report)
        await db.flush()
        logger.debug(f"Inserted report {report.id} (status={report.status})")
        return report

    @staticmethod
    async def get_report(db: AsyncSession, report_id: int) -> TpsReport:
        """
        Get a report by ID, reloading any copy already in the session.

        Raises:
            NotFound: If the report does not exist
        """
        result = await db.execute(
            select(TpsReport)
            .where(TpsReport.id == report_id)
            .execution_options(populate_existing=True)
        )
        report = result.unique().scalars().first()
        if report is None:
            raise NotFound("TPS report not found")
        return report

    @staticmethod
    async def update_report(
        db: AsyncSession,
        report_id: int,
        changes: Dict[str, Any],
        expected_status: ReportStatus,
        expected_version: int,
    ) -> TpsReport:
        """
        Conditionally update a report.

        The row is only written when its status and version still match what
        the caller read, and never when it is terminal.

        Raises:
            NotFound: If the report does not exist
            Forbidden: If the caller read the report in a terminal status
            Conflict: If another write happened since the caller read the report
        """
        for immutable in ("id", "creator_id", "receiver_id", "replicated_from_id", "created_at", "version"):
            changes.pop(immutable, None)

        result = await db.execute(
            update(TpsReport)
            .where(
                and_(
                    TpsReport.id == report_id,
                    TpsReport.status == expected_status.value,
                    TpsReport.version == expected_version,
                    TpsReport.status.notin_(_TERMINAL_VALUES),
                )
            )
            .values(**changes, version=TpsReport.version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            current = await ReportStore.get_report(db, report_id)
            unchanged = current.status == expected_status.value and current.version == expected_version
            if unchanged and current.status_enum.is_terminal:
                logger.warning(f"Refused update of finalized report {report_id}")
                raise Forbidden("This report is already finalized")
            logger.warning(
                f"Stale update of report {report_id}: expected {expected_status.value}/v{expected_version}, "
                f"found {current.status}/v{current.version}"
            )
            raise Conflict()

        return await ReportStore.get_report(db, report_id)

    @staticmethod
    async def record_snapshot(db: AsyncSession, report_id: int, pdf_path: str) -> TpsReport:
        """
        Point a report at its stored PDF snapshot.

        Only ``pdf_path`` is written. Status and version are left alone, so
        this also applies to terminal reports whose snapshot was stored after
        the final transition committed.
        """
        result = await db.execute(
            update(TpsReport)
            .where(TpsReport.id == report_id)
            .values(pdf_path=pdf_path)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("TPS report not found")
        logger.debug(f"Recorded snapshot {pdf_path} for report {report_id}")
        return await ReportStore.get_report(db, report_id)

    @staticmethod
    async def list_by_user(
        db: AsyncSession,
        user_id: int,
        status: Optional[ReportStatus] = None,
    ) -> List[TpsReport]:
        """Reports where the user is creator or receiver, newest first."""
        query = select(TpsReport).where(
            or_(TpsReport.creator_id == user_id, TpsReport.receiver_id == user_id)
        )
        if status is not None:
            query = query.where(TpsReport.status == status.value)
        query = query.order_by(TpsReport.updated_at.desc(), TpsReport.id.desc())
        result = await db.execute(query)
        return list(result.unique().scalars().all())

    @staticmethod
    async def list_by_status(db: AsyncSession, status: ReportStatus) -> List[TpsReport]:
        result = await db.execute(
            select(TpsReport)
            .where(TpsReport.status == status.value)
            .order_by(TpsReport.id)
        )
        return list(result.unique().scalars().all())

    @staticmethod
    async def count_for_user(db: AsyncSession, user_id: int) -> Dict[str, int]:
        """Pending, completed and aborted counts over the user's reports."""
        result = await db.execute(
            select(
                func.coalesce(func.sum(case((TpsReport.status.in_(_PENDING_VALUES), 1), else_=0)), 0),
                func.coalesce(func.sum(case((TpsReport.status == ReportStatus.COMPLETED.value, 1), else_=0)), 0),
                func.coalesce(func.sum(case((TpsReport.status == ReportStatus.ABORTED.value, 1), else_=0)), 0),
            ).where(or_(TpsReport.creator_id == user_id, TpsReport.receiver_id == user_id))
        )
        pending, completed, aborted = result.one()
        return {"pending": int(pending), "completed": int(completed), "aborted": int(aborted)}

    # Logs

    @staticmethod
    async def append_log(
        db: AsyncSession,
        report_id: int,
        user_id: int,
        action: LogAction,
        details: Optional[Dict[str, Any]] = None,
    ) -> TpsLog:
        """Append an audit entry. Entries are never modified afterwards."""
        logger.debug(f"Creating report log: {action.value} on report {report_id} by user {user_id}")
        log = TpsLog(
            tps_id=report_id,
            user_id=user_id,
            action=action.value,
            details=make_json_serializable(details or {}),
        )
        db.add(log)
        await db.flush()
        return log

    @staticmethod
    async def list_logs(db: AsyncSession, report_id: int) -> List[TpsLog]:
        """Log entries for a report, newest first."""
        result = await db.execute(
            select(TpsLog)
            .where(TpsLog.tps_id == report_id)
            .order_by(TpsLog.timestamp.desc(), TpsLog.id.desc())
        )
        return list(result.unique().scalars().all())
