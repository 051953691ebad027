"""
Мониторинг очереди и системы.
"""

import threading
from typing import Callable, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

import psutil

from .logger import get_logger


logger = get_logger(__name__)


@dataclass
class SystemMetrics:
    """Метрики системы."""
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_used_mb: float = 0.0
    memory_available_mb: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class HealthStatus:
    """Статус здоровья очереди."""
    is_healthy: bool = True
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)


def collect_system_metrics() -> SystemMetrics:
    """Сбор системных метрик."""
    try:
        memory = psutil.virtual_memory()
        return SystemMetrics(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=memory.percent,
            memory_used_mb=memory.used / (1024 * 1024),
            memory_available_mb=memory.available / (1024 * 1024)
        )
    except (psutil.Error, OSError) as e:
        logger.error(f"Error collecting system metrics: {e}")
        return SystemMetrics()


class QueueMonitor:
    """
    Периодическая проверка здоровья очереди.

    Сообщает о зависших элементах (PENDING с невыполнимыми зависимостями),
    высокой доле ошибок и нагрузке на систему.
    """

    def __init__(
        self,
        queue,
        interval: float = 10.0,
        error_rate_threshold: float = 10.0,
        cpu_threshold: float = 90.0,
        memory_threshold: float = 90.0,
        metrics_source: Optional[Callable[[], SystemMetrics]] = None
    ):
        self.queue = queue
        self.interval = interval
        self.error_rate_threshold = error_rate_threshold
        self.cpu_threshold = cpu_threshold
        self.memory_threshold = memory_threshold
        self._metrics_source = metrics_source or collect_system_metrics

        self._monitoring_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_status: Optional[HealthStatus] = None

    def check_health(self) -> HealthStatus:
        """Выполнение всех проверок."""
        issues = []
        warnings = []

        stats = self.queue.get_stats()

        stuck = set(self.queue.get_stuck_items())
        for item_id, reasons in self.queue.get_blocked_items().items():
            details = ", ".join(f"{dep_id}={reason}" for dep_id, reason in reasons.items())
            message = f"Item {item_id} blocked by dependencies: {details}"
            if item_id in stuck:
                issues.append(message)
            else:
                warnings.append(message)

        if stats.failure_rate > self.error_rate_threshold:
            issues.append(f"High failure rate: {stats.failure_rate:.1f}%")

        system = self._metrics_source()
        if system.cpu_percent > self.cpu_threshold:
            warnings.append(f"High CPU usage: {system.cpu_percent:.1f}%")
        if system.memory_percent > self.memory_threshold:
            warnings.append(f"High memory usage: {system.memory_percent:.1f}%")

        status = HealthStatus(is_healthy=not issues, issues=issues, warnings=warnings)
        self._last_status = status
        return status

    def get_last_status(self) -> Optional[HealthStatus]:
        return self._last_status

    def start(self):
        """Запуск мониторинга в фоновом потоке."""
        if self._monitoring_thread and self._monitoring_thread.is_alive():
            logger.warning("Queue monitoring already running")
            return

        self._stop_event.clear()
        self._monitoring_thread = threading.Thread(
            target=self._monitoring_loop,
            name="queue-monitor",
            daemon=True
        )
        self._monitoring_thread.start()
        logger.info(f"Queue monitoring started with interval {self.interval}s")

    def stop(self):
        """Остановка мониторинга."""
        if self._monitoring_thread and self._monitoring_thread.is_alive():
            self._stop_event.set()
            self._monitoring_thread.join(timeout=5.0)
            logger.info("Queue monitoring stopped")

    def _monitoring_loop(self):
        while not self._stop_event.is_set():
            try:
                status = self.check_health()
                for issue in status.issues:
                    logger.warning(issue)
                for warning in status.warnings:
                    logger.info(warning)
            except Exception as e:
                logger.error(f"Error in queue monitoring: {e}")

            self._stop_event.wait(self.interval)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def __repr__(self) -> str:
        running = bool(self._monitoring_thread and self._monitoring_thread.is_alive())
        return f"QueueMonitor(interval={self.interval}, running={running})"
