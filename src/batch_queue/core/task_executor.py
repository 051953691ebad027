"""
Исполнитель элементов очереди с таймаутом.
"""

import asyncio
import inspect
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass

from ..models.item import WorkItem
from ..utils.logger import get_logger, item_extra
from ..exceptions import ItemTimeoutError


logger = get_logger(__name__)


Processor = Callable[[WorkItem], Any]


@dataclass
class ExecutionConfig:
    """Конфигурация выполнения элементов."""
    timeout: Optional[float] = 300.0  # Таймаут одной попытки в секундах, None - без ограничения
    max_workers: Optional[int] = None  # Потоки для синхронных процессоров
    log_execution_details: bool = True


@dataclass
class ExecutionOutcome:
    """Итог одной попытки выполнения."""
    item_id: str
    success: bool
    result: Any = None
    error: Optional[BaseException] = None
    execution_time: float = 0.0
    timed_out: bool = False


class ItemExecutor:
    """
    Запускает процессор для элемента под защитой таймаута.

    Процессор может быть корутинной функцией (выполняется в цикле событий)
    или обычной функцией (выполняется в пуле потоков). По таймауту корутина
    отменяется; поток синхронного процессора продолжает работу, но его
    результат отбрасывается.
    """

    def __init__(self, config: Optional[ExecutionConfig] = None):
        self.config = config or ExecutionConfig()
        self._metrics_lock = threading.Lock()
        self._thread_pool: Optional[ThreadPoolExecutor] = None
        self._metrics = self._empty_metrics()

        logger.debug(f"ItemExecutor initialized with config: {self.config}")

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            'total_executions': 0,
            'successful_executions': 0,
            'failed_executions': 0,
            'timeout_executions': 0,
            'total_execution_time': 0.0,
            'average_execution_time': 0.0,
            'max_execution_time': 0.0,
            'min_execution_time': float('inf')
        }

    def _get_thread_pool(self) -> ThreadPoolExecutor:
        if self._thread_pool is None:
            self._thread_pool = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="batch-queue"
            )
        return self._thread_pool

    async def _invoke(self, processor: Processor, item: WorkItem) -> Any:
        if inspect.iscoroutinefunction(processor):
            return await processor(item)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._get_thread_pool(), processor, item)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def process_with_timeout(self, processor: Processor, item: WorkItem) -> Any:
        """
        Выполнение процессора с таймаутом.

        Raises:
            ItemTimeoutError: Процессор не завершился за отведенное время
        """
        timeout = item.timeout if item.timeout is not None else self.config.timeout
        if timeout is None:
            return await self._invoke(processor, item)

        try:
            return await asyncio.wait_for(self._invoke(processor, item), timeout)
        except asyncio.TimeoutError:
            raise ItemTimeoutError(
                f"Operation timeout: item {item.id} did not finish within {timeout}s",
                timeout=timeout
            ) from None

    async def execute(self, item: WorkItem, processor: Processor) -> ExecutionOutcome:
        """
        Одна попытка выполнения элемента.

        Ошибки процессора не пробрасываются, а возвращаются в ExecutionOutcome;
        asyncio.CancelledError пробрасывается.

        Args:
            item: Элемент в статусе PROCESSING
            processor: Функция обработки

        Returns:
            Итог попытки
        """
        start_time = time.monotonic()

        if self.config.log_execution_details:
            logger.debug(f"Executing item {item.id} (attempt {item.retry_count + 1})")

        try:
            result = await self.process_with_timeout(processor, item)
        except ItemTimeoutError as e:
            execution_time = time.monotonic() - start_time
            self._update_metrics(execution_time, False, is_timeout=True)
            logger.warning(f"Item {item.id} timed out after {execution_time:.3f}s", extra=item_extra(item.id))
            return ExecutionOutcome(
                item_id=item.id,
                success=False,
                error=e,
                execution_time=execution_time,
                timed_out=True
            )
        except Exception as e:
            execution_time = time.monotonic() - start_time
            self._update_metrics(execution_time, False)
            logger.debug(f"Item {item.id} raised {type(e).__name__}: {e}")
            return ExecutionOutcome(
                item_id=item.id,
                success=False,
                error=e,
                execution_time=execution_time
            )

        execution_time = time.monotonic() - start_time
        self._update_metrics(execution_time, True)

        if self.config.log_execution_details:
            logger.debug(f"Item {item.id} processed in {execution_time:.3f}s", extra=item_extra(item.id))

        return ExecutionOutcome(
            item_id=item.id,
            success=True,
            result=result,
            execution_time=execution_time
        )

    def _update_metrics(self, execution_time: float, success: bool, is_timeout: bool = False):
        """Обновление метрик выполнения."""
        with self._metrics_lock:
            self._metrics['total_executions'] += 1
            self._metrics['total_execution_time'] += execution_time
            self._metrics['max_execution_time'] = max(self._metrics['max_execution_time'], execution_time)
            self._metrics['min_execution_time'] = min(self._metrics['min_execution_time'], execution_time)
            self._metrics['average_execution_time'] = (
                self._metrics['total_execution_time'] / self._metrics['total_executions']
            )

            if success:
                self._metrics['successful_executions'] += 1
            else:
                self._metrics['failed_executions'] += 1
                if is_timeout:
                    self._metrics['timeout_executions'] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Получение метрик выполнения."""
        with self._metrics_lock:
            metrics = self._metrics.copy()

        total = metrics['total_executions']
        if total > 0:
            metrics['success_rate'] = (metrics['successful_executions'] / total) * 100
            metrics['failure_rate'] = (metrics['failed_executions'] / total) * 100
            metrics['timeout_rate'] = (metrics['timeout_executions'] / total) * 100
        else:
            metrics['success_rate'] = 0.0
            metrics['failure_rate'] = 0.0
            metrics['timeout_rate'] = 0.0

        if metrics['min_execution_time'] == float('inf'):
            metrics['min_execution_time'] = 0.0

        return metrics

    def reset_metrics(self):
        """Сброс метрик."""
        with self._metrics_lock:
            self._metrics = self._empty_metrics()

    def shutdown(self):
        """Освобождение пула потоков; зависшие потоки не ожидаются."""
        if self._thread_pool is not None:
            self._thread_pool.shutdown(wait=False)
            self._thread_pool = None

    def __repr__(self) -> str:
        metrics = self.get_metrics()
        return f"ItemExecutor(executions={metrics['total_executions']}, success_rate={metrics['success_rate']:.1f}%)"
