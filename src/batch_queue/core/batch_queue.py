"""
Очередь пакетной обработки с приоритетами, зависимостями и ретраями.
"""

import asyncio
import logging
import itertools
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime

from .dependency_gate import DependencyGate
from .error_classifier import ErrorResolver
from .retry_manager import RetryManager, RetryConfig, RetryAttempt, RetryCondition
from .scheduler import Scheduler
from .task_executor import ItemExecutor, ExecutionConfig, ExecutionOutcome, Processor

from ..models.item import WorkItem, ItemStatus
from ..models.queue_stats import QueueStats, QueueRunStatus

from ..utils.logger import get_logger, item_extra
from ..exceptions import ConfigurationError, QueueConflictError, ValidationError


logger = get_logger(__name__)


ProgressCallback = Callable[[int, int, WorkItem], None]
ErrorCallback = Callable[[BaseException, WorkItem], None]
CompleteCallback = Callable[[List[WorkItem]], None]


@dataclass
class QueueConfig:
    """Конфигурация очереди."""

    # Основные параметры
    max_concurrency: int = 5
    batch_delay: float = 0.1  # Пауза между пакетами в секундах

    # Конфигурации компонентов
    retry: RetryConfig = field(default_factory=RetryConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    # Расширение таймаута элемента правилом timeout_extension
    timeout_extension_factor: float = 1.5

    # Очередь не настраивает логирование сама: приложение передает это значение
    # в setup_logging(config.log_level)
    log_level: str = "INFO"

    def validate(self) -> bool:
        """Валидация конфигурации."""
        errors = []

        if self.max_concurrency < 1:
            errors.append("max_concurrency must be >= 1")

        if self.batch_delay < 0:
            errors.append("batch_delay must be >= 0")

        if self.retry.max_retries < 1:
            errors.append("retry.max_retries must be >= 1")

        if self.retry.base_delay < 0:
            errors.append("retry.base_delay must be >= 0")

        if self.retry.max_delay < 0:
            errors.append("retry.max_delay must be >= 0")

        if self.retry.backoff_factor < 1:
            errors.append("retry.backoff_factor must be >= 1")

        low, high = self.retry.jitter_range
        if not 0 <= low <= high:
            errors.append("retry.jitter_range must satisfy 0 <= low <= high")

        if self.execution.timeout is not None and self.execution.timeout <= 0:
            errors.append("execution.timeout must be > 0")

        if self.timeout_extension_factor < 1:
            errors.append("timeout_extension_factor must be >= 1")

        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            errors.append(f"log_level must be a logging level name, got {self.log_level!r}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        return True


class BatchQueue:
    """
    Очередь пакетной обработки.

    Элементы выбираются пакетами по приоритету (затем по времени создания),
    только если все их зависимости завершены. Пакет выполняется конкурентно,
    не более max_concurrency элементов одновременно; упавшие элементы
    возвращаются в очередь после backoff-задержки или помечаются FAILED.

    Экземпляр принадлежит вызывающему; одновременно допускается только один
    прогон start().
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        retry_condition: Optional[RetryCondition] = None,
        error_resolver: Optional[ErrorResolver] = None
    ):
        self.config = config or QueueConfig()
        self.config.validate()

        self._on_progress = on_progress
        self._on_error = on_error
        self._on_complete = on_complete

        self._lock = threading.RLock()
        self._items: Dict[str, WorkItem] = {}
        self._in_flight: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._sequence = itertools.count()

        # Компоненты
        self._gate = DependencyGate(self._items)
        self._scheduler = Scheduler(self._gate, self.config.max_concurrency)
        self._executor = ItemExecutor(self.config.execution)
        self._retry_manager = RetryManager(
            self.config.retry,
            retry_condition=retry_condition,
            resolver=error_resolver
        )

        # Состояние прогона
        self._status = QueueRunStatus.IDLE
        self._stop_requested = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._run_started_at: Optional[float] = None
        self._run_finished_at: Optional[float] = None
        self._completed_in_run = 0
        self._settled: List[WorkItem] = []

        logger.info(f"BatchQueue initialized with config: {self.config}")

    # Добавление элементов

    def add(self, items: Iterable[WorkItem]):
        """
        Добавление элементов в очередь.

        Элемент сбрасывается в PENDING с retry_count=0; max_retries берется
        из конфигурации, если не задан. Повторное добавление существующего id
        перезаписывает запись.
        """
        items = list(items)
        for item in items:
            if not isinstance(item, WorkItem):
                raise ValidationError(f"Expected WorkItem, got {type(item).__name__}")
            if item.max_retries is None:
                item.max_retries = self.config.retry.max_retries
            if item.max_retries < 1:
                raise ValidationError(f"Item {item.id}: max_retries must be >= 1")

        with self._lock:
            for item in items:
                existing = self._items.get(item.id)
                if existing is not None:
                    logger.warning(
                        f"Item {item.id} already exists (status: {existing.status.value}), overwriting"
                    )

                item.status = ItemStatus.PENDING
                item.retry_count = 0
                item.started_at = None
                item.completed_at = None
                item.not_before = None
                item.error = None
                item.last_error = None
                item.result = None
                item.created_at = datetime.now()
                item.sequence = next(self._sequence)
                self._items[item.id] = item

        logger.debug(f"Added {len(items)} item(s) to queue")

    def add_item(self, item: WorkItem):
        """Добавление одного элемента."""
        self.add([item])

    # Выполнение

    async def start(self, processor: Processor) -> List[WorkItem]:
        """
        Запуск обработки очереди.

        Работает, пока есть готовые элементы или элементы, ожидающие ретрая.
        Элементы, заблокированные зависимостями навсегда, остаются PENDING.

        Args:
            processor: Корутинная или обычная функция (item) -> result

        Returns:
            Элементы, завершившиеся за прогон, в порядке завершения

        Raises:
            QueueConflictError: Очередь уже запущена
        """
        with self._lock:
            if self._status != QueueRunStatus.IDLE:
                raise QueueConflictError(f"Queue is already running (status: {self._status.value})")

            self._status = QueueRunStatus.RUNNING
            self._stop_requested = False
            self._loop = asyncio.get_running_loop()
            self._stop_event = asyncio.Event()
            self._run_started_at = time.monotonic()
            self._run_finished_at = None
            self._completed_in_run = 0
            self._settled = []

        logger.info(f"Starting queue run with {len(self._items)} item(s)")

        try:
            await self._run_loop(processor)
        finally:
            with self._lock:
                self._status = QueueRunStatus.IDLE
                self._run_finished_at = time.monotonic()
                self._tasks.clear()
                self._loop = None
                self._stop_event = None
                settled = list(self._settled)
            self._executor.shutdown()

        self._report_stuck_items()

        stats = self.get_stats()
        logger.info(
            f"Queue run finished: completed={stats.completed}, failed={stats.failed}, "
            f"cancelled={stats.cancelled}, pending={stats.pending}"
        )

        self._fire(self._on_complete, settled)
        return settled

    async def _run_loop(self, processor: Processor):
        while not self._stop_requested:
            now = time.monotonic()
            with self._lock:
                items = list(self._items.values())
                batch = self._scheduler.next_batch(items, self._in_flight, now)

                if not batch:
                    wait = self._scheduler.next_wakeup(items, self._in_flight, now)
                else:
                    for item in batch:
                        item.mark_processing()
                        self._in_flight.add(item.id)

            if not batch:
                if wait is None:
                    break
                logger.debug(f"No eligible items, waiting {wait:.3f}s for retry backoff")
                await self._sleep(wait)
                continue

            tasks = []
            with self._lock:
                for item in batch:
                    task = asyncio.ensure_future(self._process_item(item, processor))
                    self._tasks[item.id] = task
                    tasks.append(task)

            results = await asyncio.gather(*tasks, return_exceptions=True)

            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    self._fail_unsettled(item, result)

            with self._lock:
                for item in batch:
                    self._tasks.pop(item.id, None)
                has_pending = any(item.status == ItemStatus.PENDING for item in self._items.values())

            if self._stop_requested or not has_pending:
                break

            if self.config.batch_delay > 0:
                await self._sleep(self.config.batch_delay)

    async def _sleep(self, delay: float):
        """Пауза, которую прерывает stop()."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), delay)
        except asyncio.TimeoutError:
            pass

    async def _process_item(self, item: WorkItem, processor: Processor):
        try:
            outcome = await self._executor.execute(item, processor)
        except asyncio.CancelledError:
            with self._lock:
                self._in_flight.discard(item.id)
                # Отмена извне (не через stop): элемент не должен остаться в PROCESSING
                if item.status == ItemStatus.PROCESSING:
                    item.mark_cancelled()
                    self._settled.append(item)
            if not self._stop_requested:
                raise
            logger.debug(f"Item {item.id} processing cancelled")
            return

        self._settle(item, outcome)

    def _settle(self, item: WorkItem, outcome: ExecutionOutcome):
        """Фиксация итога попытки."""
        progress = None
        failed = False

        with self._lock:
            self._in_flight.discard(item.id)

            # stop() мог отменить элемент, пока процессор работал
            if item.status != ItemStatus.PROCESSING or self._items.get(item.id) is not item:
                logger.debug(f"Discarding outcome of item {item.id} (status: {item.status.value})")
                return

            if outcome.success:
                item.mark_completed(outcome.result)
                self._completed_in_run += 1
                self._settled.append(item)
                progress = (self._completed_in_run, len(self._items), item)
            else:
                decision = self._retry_manager.handle_failure(
                    item,
                    outcome.error,
                    context=self._resolution_context(item)
                )
                if not decision.retry:
                    self._settled.append(item)
                    failed = True

        if progress is not None:
            logger.info(f"Item {item.id} completed ({progress[0]}/{progress[1]})", extra=item_extra(item.id))
            self._fire(self._on_progress, *progress)
        if failed:
            self._fire(self._on_error, outcome.error, item)

    def _fail_unsettled(self, item: WorkItem, error: Exception):
        """Элемент, обработка итога которого упала внутри очереди, переводится в FAILED."""
        logger.error(
            f"Unexpected error while settling item {item.id}: {type(error).__name__}: {error}",
            extra=item_extra(item.id)
        )
        with self._lock:
            self._in_flight.discard(item.id)
            if item.status != ItemStatus.PROCESSING:
                return
            item.error = str(error) or type(error).__name__
            item.mark_failed()
            self._settled.append(item)

        self._fire(self._on_error, error, item)

    def _resolution_context(self, item: WorkItem) -> Dict[str, Any]:
        def increase_timeout():
            current = item.timeout if item.timeout is not None else self.config.execution.timeout
            if current is not None:
                item.timeout = current * self.config.timeout_extension_factor
                logger.info(f"Extended timeout of item {item.id} to {item.timeout:.2f}s")

        return {'item': item, 'queue': self, 'increase_timeout': increase_timeout}

    def _fire(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in callback {getattr(callback, '__name__', callback)}: {e}")

    def _report_stuck_items(self):
        blocked = self.get_blocked_items()
        for item_id, reasons in blocked.items():
            details = ", ".join(f"{dep_id}={reason}" for dep_id, reason in reasons.items())
            logger.warning(
                f"Item {item_id} left pending with unmet dependencies: {details}",
                extra=item_extra(item_id)
            )

    # Управление

    def stop(self):
        """
        Остановка прогона.

        Выполняющиеся элементы помечаются CANCELLED, выбор новых пакетов
        прекращается, задачам процессоров отправляется отмена. Побочные
        эффекты, уже выполненные процессором, не откатываются.
        """
        with self._lock:
            if self._status == QueueRunStatus.RUNNING:
                self._status = QueueRunStatus.STOPPING
            self._stop_requested = True

            cancelled = []
            for item_id in list(self._in_flight):
                item = self._items.get(item_id)
                if item is not None and item.status == ItemStatus.PROCESSING:
                    item.mark_cancelled()
                    self._settled.append(item)
                    cancelled.append(item_id)
            self._in_flight.clear()
            tasks = [self._tasks[item_id] for item_id in cancelled if item_id in self._tasks]
            loop = self._loop
            stop_event = self._stop_event

        if loop is not None:
            self._call_in_loop(loop, self._signal_stop, tasks, stop_event)

        logger.info(f"Queue stop requested, cancelled {len(cancelled)} in-flight item(s)")

    @staticmethod
    def _signal_stop(tasks: List[asyncio.Task], stop_event: Optional[asyncio.Event]):
        for task in tasks:
            if not task.done():
                task.cancel()
        if stop_event is not None:
            stop_event.set()

    @staticmethod
    def _call_in_loop(loop: asyncio.AbstractEventLoop, func: Callable, *args):
        """Вызов в потоке цикла событий (stop() можно звать из другого потока)."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            func(*args)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(func, *args)

    def clear(self):
        """Удаление всех элементов (с остановкой текущего прогона)."""
        if self.is_running():
            self.stop()
        with self._lock:
            self._items.clear()
            self._in_flight.clear()
        self._retry_manager.clear_history()
        logger.info("Queue cleared")

    def clear_completed(self) -> int:
        """
        Удаление завершенных элементов.

        Returns:
            Количество удаленных элементов
        """
        with self._lock:
            completed = [item_id for item_id, item in self._items.items()
                         if item.status == ItemStatus.COMPLETED]
            for item_id in completed:
                del self._items[item_id]
        self._retry_manager.clear_history(completed)
        logger.debug(f"Cleared {len(completed)} completed item(s)")
        return len(completed)

    # Состояние

    def get_items(self) -> List[WorkItem]:
        """Все элементы в порядке добавления."""
        with self._lock:
            return list(self._items.values())

    def get_item(self, item_id: str) -> Optional[WorkItem]:
        with self._lock:
            return self._items.get(item_id)

    def get_stats(self) -> QueueStats:
        """Снимок статистики; безопасен во время прогона."""
        with self._lock:
            items = list(self._items.values())
            blocked = sum(
                1 for item in items
                if item.status == ItemStatus.PENDING and not self._gate.can_run(item)
            )

            elapsed = None
            if self._run_started_at is not None:
                end = self._run_finished_at if self._run_finished_at is not None else time.monotonic()
                elapsed = end - self._run_started_at

        return QueueStats.from_items(items, elapsed, blocked=blocked)

    def get_blocked_items(self) -> Dict[str, Dict[str, str]]:
        """
        Элементы PENDING, которые не пропускает проверка зависимостей.

        Returns:
            id элемента -> {id зависимости: причина}
        """
        with self._lock:
            return {
                item.id: self._gate.unmet_dependencies(item)
                for item in self._items.values()
                if item.status == ItemStatus.PENDING and not self._gate.can_run(item)
            }

    def get_stuck_items(self) -> List[str]:
        """id элементов PENDING, которые не запустятся никогда (зависимость отсутствует или не завершилась успешно)."""
        with self._lock:
            return [
                item.id for item in self._items.values()
                if item.status == ItemStatus.PENDING and self._gate.is_permanently_blocked(item)
            ]

    def get_retry_history(self, item_id: str) -> List[RetryAttempt]:
        return self._retry_manager.get_retry_history(item_id)

    def get_metrics(self) -> Dict[str, Any]:
        """Статистика очереди вместе с метриками исполнителя и ретраев."""
        metrics = self.get_stats().to_dict()
        metrics.update({
            'execution_metrics': self._executor.get_metrics(),
            'retry_metrics': self._retry_manager.get_stats()
        })
        return metrics

    def get_status(self) -> QueueRunStatus:
        return self._status

    def is_running(self) -> bool:
        return self._status != QueueRunStatus.IDLE

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (f"BatchQueue(status={self._status.value}, total={stats.total}, "
                f"pending={stats.pending}, processing={stats.processing})")
