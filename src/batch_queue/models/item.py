"""
Модели элементов очереди пакетной обработки.
"""

import time
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, TYPE_CHECKING
from dataclasses import dataclass, field
from datetime import datetime

from ..exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from ..core.error_classifier import ClassifiedError


class ItemStatus(Enum):
    """Статусы элементов."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.CANCELLED})

# Допустимые переходы статусов
_TRANSITIONS = {
    ItemStatus.PENDING: frozenset({ItemStatus.PROCESSING, ItemStatus.CANCELLED}),
    ItemStatus.PROCESSING: frozenset({
        ItemStatus.COMPLETED,
        ItemStatus.PENDING,
        ItemStatus.FAILED,
        ItemStatus.CANCELLED,
    }),
    ItemStatus.COMPLETED: frozenset(),
    ItemStatus.FAILED: frozenset(),
    ItemStatus.CANCELLED: frozenset(),
}


class QueuePriority(Enum):
    """Приоритеты элементов."""
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


@dataclass
class WorkItem:
    """Единица работы в очереди."""

    id: str
    payload: Any = None
    priority: QueuePriority = QueuePriority.NORMAL
    status: ItemStatus = ItemStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    max_retries: Optional[int] = None
    dependencies: Set[str] = field(default_factory=set)
    error: Optional[str] = None
    last_error: Optional["ClassifiedError"] = None
    result: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    not_before: Optional[float] = None
    sequence: int = 0

    def __post_init__(self):
        """Валидация после инициализации."""
        if not self.id:
            raise ValueError("Work item id is required")
        if not isinstance(self.priority, QueuePriority):
            self.priority = QueuePriority(self.priority)
        # Зависимости храним множеством независимо от того, что передал вызывающий
        self.dependencies = set(self.dependencies or ())

    def _transition(self, new_status: ItemStatus):
        if new_status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Item {self.id}: cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_processing(self):
        self._transition(ItemStatus.PROCESSING)
        self.started_at = datetime.now()
        self.not_before = None

    def mark_completed(self, result: Any = None):
        self._transition(ItemStatus.COMPLETED)
        self.completed_at = datetime.now()
        self.result = result

    def mark_retry(self, not_before: float):
        """Возврат в PENDING; элемент не выбирается раньше not_before."""
        self._transition(ItemStatus.PENDING)
        self.not_before = not_before

    def mark_failed(self):
        self._transition(ItemStatus.FAILED)
        self.completed_at = datetime.now()

    def mark_cancelled(self):
        self._transition(ItemStatus.CANCELLED)
        self.completed_at = datetime.now()
        self.not_before = None

    def is_ready(self, now: Optional[float] = None) -> bool:
        """Истекла ли задержка перед повторной попыткой."""
        if self.not_before is None:
            return True
        if now is None:
            now = time.monotonic()
        return now >= self.not_before

    @property
    def processing_time(self) -> Optional[float]:
        """Время обработки в секундах (только для завершенных попыток)."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Преобразование в словарь."""
        return {
            'id': self.id,
            'priority': self.priority.name,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'retry_count': self.retry_count,
            'max_retries': self.max_retries,
            'dependencies': sorted(self.dependencies),
            'error': self.error,
            'error_type': self.last_error.type.value if self.last_error else None,
            'metadata': dict(self.metadata),
        }


def _create_batch(
    kind: str,
    payloads: Iterable[Any],
    priority: QueuePriority,
    max_retries: int
) -> List[WorkItem]:
    stamp = int(time.time() * 1000)
    return [
        WorkItem(
            id=f"{kind}_{stamp}_{index}",
            payload=payload,
            priority=priority,
            max_retries=max_retries,
            metadata={'type': kind, 'original_index': index}
        )
        for index, payload in enumerate(payloads)
    ]


def create_sync_batch(payloads: Iterable[Any], priority: QueuePriority = QueuePriority.NORMAL) -> List[WorkItem]:
    """Пакет операций синхронизации (до 3 попыток на элемент)."""
    return _create_batch("sync", payloads, priority, max_retries=3)


def create_import_batch(payloads: Iterable[Any], priority: QueuePriority = QueuePriority.NORMAL) -> List[WorkItem]:
    """Пакет операций импорта (до 2 попыток на элемент)."""
    return _create_batch("import", payloads, priority, max_retries=2)


def create_export_batch(queries: Iterable[Any], priority: QueuePriority = QueuePriority.NORMAL) -> List[WorkItem]:
    """Пакет операций экспорта (одна попытка на элемент)."""
    return _create_batch("export", queries, priority, max_retries=1)
