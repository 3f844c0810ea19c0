from localactions.history.manager import HistoryError, HistoryManager
from localactions.history.models import (
    CommandArgs,
    HistoryRecord,
    HistoryStatus,
    JobRecord,
    StepRecord,
)

__all__ = [
    "CommandArgs",
    "HistoryError",
    "HistoryManager",
    "HistoryRecord",
    "HistoryStatus",
    "JobRecord",
    "StepRecord",
]
