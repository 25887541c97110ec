"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from formplay.models.base import Base
from formplay.models.user import User
from formplay.models.report import TpsReport, ReportStatus, TERMINAL_STATUSES, PENDING_STATUSES
from formplay.models.log import TpsLog, LogAction

__all__ = [
    "Base",
    "User",
    "TpsReport",
    "ReportStatus",
    "TERMINAL_STATUSES",
    "PENDING_STATUSES",
    "TpsLog",
    "LogAction",
]
