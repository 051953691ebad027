"""
Выбор следующего пакета элементов для выполнения.
"""

from typing import AbstractSet, Iterable, List, Optional, Tuple

from .dependency_gate import DependencyGate
from ..models.item import WorkItem, ItemStatus
from ..utils.logger import get_logger


logger = get_logger(__name__)


def schedule_key(item: WorkItem) -> Tuple[int, float, int]:
    """Порядок выбора: приоритет по убыванию, затем время создания, затем порядок добавления."""
    return (-item.priority.value, item.created_at.timestamp(), item.sequence)


class Scheduler:
    """Отбирает готовые элементы в порядке приоритета в пределах свободных слотов."""

    def __init__(self, gate: DependencyGate, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.gate = gate
        self.max_concurrency = max_concurrency

    def _waiting(self, items: Iterable[WorkItem], in_flight: AbstractSet[str]) -> List[WorkItem]:
        return [
            item for item in items
            if item.status == ItemStatus.PENDING
            and item.id not in in_flight
            and self.gate.can_run(item)
        ]

    def eligible(self, items: Iterable[WorkItem], in_flight: AbstractSet[str], now: float) -> List[WorkItem]:
        """Все готовые к запуску элементы в порядке выбора."""
        ready = [item for item in self._waiting(items, in_flight) if item.is_ready(now)]
        ready.sort(key=schedule_key)
        return ready

    def next_batch(self, items: Iterable[WorkItem], in_flight: AbstractSet[str], now: float) -> List[WorkItem]:
        """
        Следующий пакет для выполнения.

        Args:
            items: Элементы реестра
            in_flight: ID выполняющихся элементов
            now: Текущее значение time.monotonic()

        Returns:
            Не более max_concurrency - len(in_flight) элементов; пустой список,
            если готовых элементов нет
        """
        slots = self.max_concurrency - len(in_flight)
        if slots <= 0:
            return []

        batch = self.eligible(items, in_flight, now)[:slots]
        if batch:
            logger.debug(f"Selected batch: {[item.id for item in batch]}")
        return batch

    def next_wakeup(self, items: Iterable[WorkItem], in_flight: AbstractSet[str], now: float) -> Optional[float]:
        """
        Через сколько секунд станет готов ближайший элемент, ожидающий ретрая.

        Returns:
            Секунды ожидания или None, если ждать нечего
        """
        waits = [
            item.not_before - now
            for item in self._waiting(items, in_flight)
            if not item.is_ready(now)
        ]
        if not waits:
            return None
        return max(min(waits), 0.0)
