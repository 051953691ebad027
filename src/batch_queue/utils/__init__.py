"""
Утилиты для очереди пакетной обработки.

Загрузка конфигурации (utils.config) импортируется из пакета верхнего
уровня: она зависит от core, а core зависит от логгера.
"""

from .logger import get_logger, setup_logging, get_log_metrics, reset_log_metrics
from .monitoring import QueueMonitor, HealthStatus, SystemMetrics, collect_system_metrics

__all__ = [
    "get_logger",
    "setup_logging",
    "get_log_metrics",
    "reset_log_metrics",
    "QueueMonitor",
    "HealthStatus",
    "SystemMetrics",
    "collect_system_metrics"
]
