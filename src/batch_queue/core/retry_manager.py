"""
Менеджер ретраев с экспоненциальным backoff.
"""

import asyncio
import random
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .error_classifier import ClassifiedError, ErrorResolver, ResolutionResult, classify_error
from ..models.item import WorkItem
from ..utils.logger import get_logger, item_extra
from ..exceptions import RetryExhaustedError


logger = get_logger(__name__)


class BackoffStrategy(Enum):
    """Стратегии backoff."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass
class RetryConfig:
    """Конфигурация ретраев."""
    max_retries: int = 3
    base_delay: float = 1.0  # Базовая задержка в секундах
    max_delay: float = 30.0  # Максимальная задержка в секундах
    backoff_factor: float = 2.0  # База для экспоненциального роста
    jitter: bool = True  # Умножать задержку на случайный фактор
    jitter_range: tuple = (0.5, 1.0)
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    seed: Optional[int] = None  # Для воспроизводимого джиттера

    def __post_init__(self):
        if isinstance(self.strategy, str):
            self.strategy = BackoffStrategy(self.strategy)
        self.jitter_range = tuple(self.jitter_range)


@dataclass
class RetryAttempt:
    """Информация о попытке ретрая."""
    attempt_number: int
    delay: float
    timestamp: datetime
    error_type: Optional[str] = None
    item_id: str = ""


@dataclass
class RetryDecision:
    """Решение координатора ретраев по упавшему элементу."""
    retry: bool
    delay: float
    classified: ClassifiedError
    resolution: Optional[ResolutionResult] = None


RetryCondition = Callable[[ClassifiedError, WorkItem], bool]


def retry_always(classified: ClassifiedError, item: WorkItem) -> bool:
    """Политика по умолчанию: каждая ошибка расходует попытку и ретраится."""
    return True


def retryable_only(classified: ClassifiedError, item: WorkItem) -> bool:
    """Ретраить только временные ошибки (сеть, лимиты, таймауты, 5xx)."""
    return classified.retryable


class RetryManager:
    """Расчет backoff и координация ретраев элементов очереди."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        retry_condition: Optional[RetryCondition] = None,
        resolver: Optional[ErrorResolver] = None
    ):
        self.config = config or RetryConfig()
        self.retry_condition = retry_condition or retry_always
        self.resolver = resolver
        self._random = random.Random(self.config.seed)
        self._retry_history: Dict[str, List[RetryAttempt]] = {}
        self._lock = threading.Lock()

        self._stats = self._empty_stats()

        logger.debug(f"RetryManager initialized with config: {self.config}")

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'total_failures': 0,
            'total_retries': 0,
            'exhausted': 0,
            'short_circuited': 0,
        }

    def calculate_delay(self, attempt_number: int, item_id: str = "") -> float:
        """
        Расчет задержки перед следующей попыткой.

        Args:
            attempt_number: Номер попытки (начиная с 1)
            item_id: ID элемента для истории

        Returns:
            Задержка в секундах
        """
        attempt_number = max(attempt_number, 1)
        config = self.config

        if config.strategy == BackoffStrategy.FIXED:
            delay = config.base_delay
        elif config.strategy == BackoffStrategy.LINEAR:
            delay = config.base_delay * attempt_number
        else:
            delay = config.base_delay * (config.backoff_factor ** (attempt_number - 1))

        if config.jitter:
            low, high = config.jitter_range
            with self._lock:
                delay *= self._random.uniform(low, high)

        delay = max(0.0, min(delay, config.max_delay))

        if item_id:
            self._record_attempt(item_id, attempt_number, delay)

        return delay

    def should_retry(self, item: WorkItem, classified: ClassifiedError) -> bool:
        """
        Определение необходимости ретрая.

        Вызывается после увеличения retry_count.
        """
        if item.retry_count >= item.max_retries:
            return False
        try:
            return bool(self.retry_condition(classified, item))
        except Exception as e:
            # Сломанное условие не должно оставлять элемент в PROCESSING
            logger.error(
                f"Retry condition failed for item {item.id}, not retrying: {e}",
                extra=item_extra(item.id, classified.type.value)
            )
            return False

    def handle_failure(
        self,
        item: WorkItem,
        error: Any,
        now: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> RetryDecision:
        """
        Обработка неудачной попытки элемента.

        Фиксирует ошибку, увеличивает retry_count и либо возвращает элемент
        в PENDING с отложенным выбором, либо переводит его в FAILED.

        Args:
            item: Элемент в статусе PROCESSING
            error: Ошибка попытки
            now: Текущее значение time.monotonic()
            context: Контекст для резолвера ошибок

        Returns:
            Принятое решение
        """
        if now is None:
            now = time.monotonic()

        if item.max_retries is None:
            item.max_retries = self.config.max_retries

        classified = classify_error(error)
        item.error = classified.message
        item.last_error = classified
        item.retry_count += 1

        with self._lock:
            self._stats['total_failures'] += 1

        if not self.should_retry(item, classified):
            item.mark_failed()
            with self._lock:
                if item.retry_count >= item.max_retries:
                    self._stats['exhausted'] += 1
                else:
                    self._stats['short_circuited'] += 1
            logger.error(
                f"Item {item.id} failed after {item.retry_count} attempt(s) "
                f"[{classified.type.value}]: {classified.message}",
                extra=item_extra(item.id, classified.type.value)
            )
            return RetryDecision(retry=False, delay=0.0, classified=classified)

        delay = self.calculate_delay(item.retry_count, item.id)

        resolution = None
        if self.resolver is not None:
            resolution = self.resolver.resolve(error, context)
            if resolution.resolved and resolution.retry_after is not None:
                delay = max(delay, resolution.retry_after)

        item.mark_retry(now + delay)
        with self._lock:
            self._stats['total_retries'] += 1

        logger.warning(
            f"Item {item.id} failed [{classified.type.value}]: {classified.message}. "
            f"Retrying in {delay:.2f}s (attempt {item.retry_count + 1}/{item.max_retries})",
            extra=item_extra(item.id, classified.type.value)
        )
        return RetryDecision(retry=True, delay=delay, classified=classified, resolution=resolution)

    def _record_attempt(self, item_id: str, attempt_number: int, delay: float):
        """Запись попытки ретрая в историю."""
        with self._lock:
            self._retry_history.setdefault(item_id, []).append(
                RetryAttempt(
                    attempt_number=attempt_number,
                    delay=delay,
                    timestamp=datetime.now(),
                    item_id=item_id
                )
            )

    def get_retry_history(self, item_id: str) -> List[RetryAttempt]:
        """Получение истории ретраев для элемента."""
        with self._lock:
            return list(self._retry_history.get(item_id, []))

    def get_stats(self) -> Dict[str, Any]:
        """Получение статистики ретраев."""
        with self._lock:
            stats = self._stats.copy()
            delays = [attempt.delay for attempts in self._retry_history.values() for attempt in attempts]

        stats['average_delay'] = sum(delays) / len(delays) if delays else 0.0
        stats['max_delay_used'] = max(delays) if delays else 0.0
        stats['items_with_retries'] = len(self._retry_history)
        return stats

    def clear_history(self, item_ids: Optional[List[str]] = None):
        """Очистка истории ретраев (всей или по указанным элементам)."""
        with self._lock:
            if item_ids is None:
                self._retry_history.clear()
                self._stats = self._empty_stats()
            else:
                for item_id in item_ids:
                    self._retry_history.pop(item_id, None)

    def __repr__(self) -> str:
        stats = self.get_stats()
        return f"RetryManager(retries={stats['total_retries']}, exhausted={stats['exhausted']})"


@dataclass
class RetryResult:
    """Результат выполнения операции с ретраями."""
    success: bool
    data: Any = None
    error: Any = None
    attempts: int = 0
    total_delay: float = 0.0
    delays: List[float] = field(default_factory=list)

    def unwrap(self) -> Any:
        """Данные операции или RetryExhaustedError."""
        if self.success:
            return self.data
        message = f"Operation failed after {self.attempts} attempt(s)"
        if isinstance(self.error, BaseException):
            raise RetryExhaustedError(message) from self.error
        raise RetryExhaustedError(f"{message}: {self.error}")


def _log_retry(attempt: int, error: Any, delay: float):
    logger.info(f"Attempt {attempt} failed, retrying in {delay:.2f}s: {error}")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    retry_condition: Optional[Callable[[Any], bool]] = None,
    on_retry: Optional[Callable[[int, Any, float], None]] = None
) -> RetryResult:
    """
    Выполнение асинхронной операции с ретраями.

    Всего делается до max_retries + 1 попыток.

    Args:
        operation: Фабрика корутины без аргументов
        config: Конфигурация ретраев
        retry_condition: Предикат по ошибке; по умолчанию ретраятся временные ошибки
        on_retry: Callback (номер попытки, ошибка, задержка)

    Returns:
        Результат с числом попыток и суммарной задержкой
    """
    manager = RetryManager(config)
    condition = retry_condition or is_transient
    on_retry = on_retry or _log_retry

    last_error = None
    delays: List[float] = []
    attempt = 0

    for attempt in range(1, manager.config.max_retries + 2):
        try:
            data = await operation()
            return RetryResult(
                success=True,
                data=data,
                attempts=attempt,
                total_delay=sum(delays),
                delays=delays
            )
        except Exception as e:
            last_error = e

            if attempt <= manager.config.max_retries and condition(e):
                delay = manager.calculate_delay(attempt)
                delays.append(delay)
                on_retry(attempt, e, delay)
                await asyncio.sleep(delay)
                continue

            break

    return RetryResult(
        success=False,
        error=last_error,
        attempts=attempt,
        total_delay=sum(delays),
        delays=delays
    )


def is_transient(error: Any) -> bool:
    """Временная ли ошибка (сеть, 5xx, 408, 429)."""
    return classify_error(error).retryable


def is_database_transient(error: Any) -> bool:
    """Временная ли ошибка базы данных (обрыв соединения, таймаут)."""
    classified = classify_error(error)
    if classified.code == 'PGRST301':
        return True
    lowered = classified.message.lower()
    return 'connection' in lowered or 'timeout' in lowered


async def retry_api_call(
    call: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    **kwargs
) -> RetryResult:
    """Ретраи для HTTP-вызовов: 3 повтора, базовая задержка 1 с."""
    config = config or RetryConfig(max_retries=3, base_delay=1.0)
    kwargs.setdefault('retry_condition', is_transient)
    return await retry_with_backoff(call, config, **kwargs)


async def retry_database_operation(
    operation: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    **kwargs
) -> RetryResult:
    """Ретраи для операций с базой данных: 2 повтора, базовая задержка 0.5 с."""
    config = config or RetryConfig(max_retries=2, base_delay=0.5)
    kwargs.setdefault('retry_condition', is_database_transient)
    return await retry_with_backoff(operation, config, **kwargs)
