from .history import ExecutionHistoryDB
from .models import PromptRun

__all__ = [
    "PromptRun",
    "ExecutionHistoryDB",
]
