"""
Статистика очереди пакетной обработки.
"""

from enum import Enum
from typing import Dict, Iterable, Optional
from dataclasses import dataclass, asdict

from .item import WorkItem, ItemStatus


class QueueRunStatus(Enum):
    """Статусы прогона очереди."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class QueueStats:
    """Снимок статистики очереди."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    blocked: int = 0

    # Среднее время обработки завершенных элементов, секунды
    average_processing_time: float = 0.0
    # Завершенных элементов в минуту
    throughput: float = 0.0

    @classmethod
    def from_items(
        cls,
        items: Iterable[WorkItem],
        elapsed_seconds: Optional[float],
        blocked: int = 0
    ) -> 'QueueStats':
        """Расчет статистики по элементам реестра."""
        counts = {status: 0 for status in ItemStatus}
        processing_times = []
        total = 0

        for item in items:
            total += 1
            counts[item.status] += 1
            if item.status == ItemStatus.COMPLETED and item.processing_time is not None:
                processing_times.append(item.processing_time)

        average = sum(processing_times) / len(processing_times) if processing_times else 0.0

        completed = counts[ItemStatus.COMPLETED]
        throughput = 0.0
        if elapsed_seconds:
            minutes = elapsed_seconds / 60.0
            if minutes > 0:
                throughput = completed / minutes

        return cls(
            total=total,
            pending=counts[ItemStatus.PENDING],
            processing=counts[ItemStatus.PROCESSING],
            completed=completed,
            failed=counts[ItemStatus.FAILED],
            cancelled=counts[ItemStatus.CANCELLED],
            blocked=blocked,
            average_processing_time=average,
            throughput=throughput
        )

    @property
    def failure_rate(self) -> float:
        """Доля неудачных среди завершившихся, в процентах."""
        settled = self.completed + self.failed
        if settled == 0:
            return 0.0
        return (self.failed / settled) * 100

    def to_dict(self) -> Dict:
        """Преобразование в словарь."""
        return asdict(self)
