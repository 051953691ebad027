"""
Проверка готовности зависимостей элементов.
"""

from typing import Dict, Mapping

from ..models.item import WorkItem, ItemStatus


MISSING = "missing"


class DependencyGate:
    """Допускает элемент к выполнению, только когда все его зависимости COMPLETED."""

    def __init__(self, registry: Mapping[str, WorkItem]):
        self._registry = registry

    def can_run(self, item: WorkItem) -> bool:
        for dep_id in item.dependencies:
            dep = self._registry.get(dep_id)
            if dep is None or dep.status != ItemStatus.COMPLETED:
                return False
        return True

    def unmet_dependencies(self, item: WorkItem) -> Dict[str, str]:
        """
        Незавершенные зависимости элемента.

        Returns:
            Словарь id зависимости -> причина (missing или статус зависимости)
        """
        unmet = {}
        for dep_id in sorted(item.dependencies):
            dep = self._registry.get(dep_id)
            if dep is None:
                unmet[dep_id] = MISSING
            elif dep.status != ItemStatus.COMPLETED:
                unmet[dep_id] = dep.status.value
        return unmet

    def is_permanently_blocked(self, item: WorkItem) -> bool:
        """Зависимость отсутствует или завершилась неуспешно: элемент не запустится никогда."""
        for dep_id in item.dependencies:
            dep = self._registry.get(dep_id)
            if dep is None or dep.status in (ItemStatus.FAILED, ItemStatus.CANCELLED):
                return True
        return False
