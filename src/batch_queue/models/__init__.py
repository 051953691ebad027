"""
Модели данных для очереди пакетной обработки.
"""

from .item import (
    WorkItem,
    ItemStatus,
    QueuePriority,
    create_sync_batch,
    create_import_batch,
    create_export_batch
)
from .queue_stats import QueueStats, QueueRunStatus

__all__ = [
    "WorkItem",
    "ItemStatus",
    "QueuePriority",
    "create_sync_batch",
    "create_import_batch",
    "create_export_batch",
    "QueueStats",
    "QueueRunStatus"
]
