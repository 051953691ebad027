"""
Тесты для отдельных компонентов очереди пакетной обработки.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
import requests

from batch_queue.core.dependency_gate import DependencyGate
from batch_queue.core.error_classifier import (
    ErrorType,
    ErrorResolver,
    ResolutionRule,
    classify_error
)
from batch_queue.core.retry_manager import (
    RetryManager,
    RetryConfig,
    BackoffStrategy,
    retryable_only,
    retry_with_backoff,
    retry_database_operation
)
from batch_queue.core.scheduler import Scheduler
from batch_queue.core.task_executor import ItemExecutor, ExecutionConfig
from batch_queue.models.item import (
    WorkItem,
    ItemStatus,
    QueuePriority,
    create_sync_batch,
    create_import_batch,
    create_export_batch
)
from batch_queue.models.queue_stats import QueueStats
from batch_queue.utils.logger import BatchQueueFormatter, MetricsHandler, item_extra
from batch_queue.exceptions import (
    InvalidTransitionError,
    ItemTimeoutError,
    NetworkError,
    OperationError,
    RetryExhaustedError
)


class TestWorkItem:
    """Тесты для модели элемента."""

    def test_item_defaults(self):
        """Тест значений по умолчанию."""
        item = WorkItem(id="a", payload={"sku": "X-1"})

        assert item.status == ItemStatus.PENDING
        assert item.priority == QueuePriority.NORMAL
        assert item.retry_count == 0
        assert item.dependencies == set()
        assert item.started_at is None

    def test_item_requires_id(self):
        """Тест обязательного id."""
        with pytest.raises(ValueError):
            WorkItem(id="")

    def test_priority_and_dependencies_are_normalized(self):
        """Тест приведения приоритета и зависимостей."""
        item = WorkItem(id="a", priority=4, dependencies=["b", "c", "b"])

        assert item.priority == QueuePriority.CRITICAL
        assert item.dependencies == {"b", "c"}

    def test_lifecycle_transitions(self):
        """Тест переходов PENDING -> PROCESSING -> COMPLETED."""
        item = WorkItem(id="a")

        item.mark_processing()
        assert item.status == ItemStatus.PROCESSING
        assert item.started_at is not None

        item.mark_completed("done")
        assert item.status == ItemStatus.COMPLETED
        assert item.result == "done"
        assert item.processing_time is not None
        assert item.status.is_terminal

    def test_pending_cannot_skip_processing(self):
        """Тест запрета перехода PENDING -> COMPLETED/FAILED."""
        item = WorkItem(id="a")

        with pytest.raises(InvalidTransitionError):
            item.mark_completed()
        with pytest.raises(InvalidTransitionError):
            item.mark_failed()

    def test_terminal_status_is_final(self):
        """Тест отсутствия переходов из терминальных статусов."""
        item = WorkItem(id="a")
        item.mark_cancelled()

        assert item.status == ItemStatus.CANCELLED
        with pytest.raises(InvalidTransitionError):
            item.mark_processing()

    def test_retry_sets_not_before(self):
        """Тест отложенного ретрая."""
        item = WorkItem(id="a")
        item.mark_processing()
        item.mark_retry(not_before=100.0)

        assert item.status == ItemStatus.PENDING
        assert not item.is_ready(99.0)
        assert item.is_ready(100.0)

    def test_batch_factories(self):
        """Тест фабрик пакетов синхронизации, импорта и экспорта."""
        sync_items = create_sync_batch(["p1", "p2"], priority=QueuePriority.HIGH)
        import_items = create_import_batch(["row"])
        export_items = create_export_batch(["query"])

        assert [item.payload for item in sync_items] == ["p1", "p2"]
        assert all(item.priority == QueuePriority.HIGH for item in sync_items)
        assert sync_items[0].id.startswith("sync_")
        assert sync_items[1].metadata == {"type": "sync", "original_index": 1}
        assert sync_items[0].max_retries == 3
        assert import_items[0].max_retries == 2
        assert export_items[0].max_retries == 1
        assert export_items[0].metadata["type"] == "export"


class TestQueueStats:
    """Тесты для статистики."""

    def test_stats_from_items(self):
        """Тест подсчета статусов и среднего времени."""
        done = WorkItem(id="done")
        done.mark_processing()
        done.mark_completed()
        done.started_at = datetime(2024, 1, 1, 12, 0, 0)
        done.completed_at = datetime(2024, 1, 1, 12, 0, 2)

        failed = WorkItem(id="failed")
        failed.mark_processing()
        failed.mark_failed()

        pending = WorkItem(id="pending")

        stats = QueueStats.from_items([done, failed, pending], elapsed_seconds=30.0, blocked=1)

        assert stats.total == 3
        assert stats.completed == 1
        assert stats.failed == 1
        assert stats.pending == 1
        assert stats.blocked == 1
        assert stats.average_processing_time == pytest.approx(2.0)
        assert stats.throughput == pytest.approx(2.0)
        assert stats.failure_rate == pytest.approx(50.0)

    def test_stats_without_run(self):
        """Тест нулевой пропускной способности до запуска."""
        stats = QueueStats.from_items([WorkItem(id="a")], elapsed_seconds=None)

        assert stats.throughput == 0.0
        assert stats.average_processing_time == 0.0


class TestErrorClassifier:
    """Тесты для классификатора ошибок."""

    @pytest.mark.parametrize("status, expected", [
        (401, ErrorType.AUTHENTICATION),
        (403, ErrorType.AUTHORIZATION),
        (429, ErrorType.RATE_LIMIT),
        (408, ErrorType.TIMEOUT),
        (504, ErrorType.TIMEOUT),
        (422, ErrorType.VALIDATION),
        (500, ErrorType.SERVER_ERROR),
        (503, ErrorType.SERVER_ERROR),
    ])
    def test_status_mapping(self, status, expected):
        """Тест соответствия HTTP-статусов типам ошибок."""
        classified = classify_error(OperationError("request failed", status=status))

        assert classified.type == expected
        assert classified.status == status

    def test_retryable_flag(self):
        """Тест признака временной ошибки."""
        assert classify_error(OperationError("x", status=429)).retryable
        assert classify_error(OperationError("x", status=502)).retryable
        assert not classify_error(OperationError("x", status=401)).retryable
        assert not classify_error(OperationError("x", status=422)).retryable
        assert not classify_error(ValueError("bad input")).retryable

    def test_network_errors(self):
        """Тест сетевых ошибок."""
        assert classify_error(NetworkError("socket closed")).type == ErrorType.NETWORK
        assert classify_error(requests.exceptions.ConnectionError("refused")).type == ErrorType.NETWORK

        classified = classify_error(ConnectionResetError())
        assert classified.type == ErrorType.NETWORK
        assert classified.message == "ConnectionResetError"

        fetch_failure = classify_error(Exception("TypeError: Failed to fetch"))
        assert fetch_failure.type == ErrorType.NETWORK
        assert fetch_failure.retryable

    def test_fetch_message_after_status(self):
        """Тест приоритета статуса над текстом "fetch"."""
        classified = classify_error(OperationError("fetch rejected", status=401))

        assert classified.type == ErrorType.AUTHENTICATION

    def test_network_marker_wins_over_status(self):
        """Тест приоритета сетевого маркера над статусом."""
        classified = classify_error(NetworkError("proxy said no", status=401))

        assert classified.type == ErrorType.NETWORK

    def test_status_wins_over_message(self):
        """Тест приоритета статуса над текстом ошибки."""
        classified = classify_error(OperationError("token timeout", status=401))

        assert classified.type == ErrorType.AUTHENTICATION

    def test_requests_http_error(self):
        """Тест извлечения статуса из requests.HTTPError."""
        response = requests.Response()
        response.status_code = 503
        error = requests.HTTPError("503 Server Error", response=response)

        classified = classify_error(error)

        assert classified.type == ErrorType.SERVER_ERROR
        assert classified.status == 503

    def test_timeout_errors(self):
        """Тест таймаутов по типу, коду и тексту."""
        assert classify_error(ItemTimeoutError("Operation timeout")).type == ErrorType.TIMEOUT
        assert classify_error(requests.exceptions.ReadTimeout("slow")).type == ErrorType.TIMEOUT
        assert classify_error(OperationError("socket hang up", code="ETIMEDOUT")).type == ErrorType.TIMEOUT
        assert classify_error("upstream timeout while syncing").type == ErrorType.TIMEOUT

    def test_mapping_input(self):
        """Тест классификации словаря."""
        classified = classify_error({"message": "slow down", "status": 429})

        assert classified.type == ErrorType.RATE_LIMIT
        assert classified.message == "slow down"

    def test_unknown_error(self):
        """Тест неизвестной ошибки."""
        classified = classify_error(OperationError("not found", status=404))

        assert classified.type == ErrorType.UNKNOWN
        assert not classified.retryable
        assert "unexpected error" in classified.user_message


class TestErrorResolver:
    """Тесты для автоматического разрешения ошибок."""

    def test_no_matching_rule(self):
        """Тест ошибки без подходящих правил."""
        resolver = ErrorResolver.with_default_rules()

        result = resolver.resolve(ValueError("boom"))

        assert not result.resolved
        assert result.action == "none"

    def test_rate_limit_uses_retry_after_header(self):
        """Тест ожидания по заголовку Retry-After."""
        resolver = ErrorResolver.with_default_rules()
        error = OperationError("Too many requests", status=429, headers={"Retry-After": "7"})

        result = resolver.resolve(error)

        assert result.resolved
        assert result.action == "rate_limit_backoff"
        assert result.retry_after == 7.0

    def test_rate_limit_default_wait(self):
        """Тест ожидания по умолчанию без заголовков."""
        resolver = ErrorResolver.with_default_rules()

        result = resolver.resolve(OperationError("rate limit exceeded", status=429))

        assert result.retry_after == 60.0

    def test_timeout_extension_calls_context(self):
        """Тест расширения таймаута через контекст."""
        resolver = ErrorResolver.with_default_rules()
        increase_timeout = Mock()

        result = resolver.resolve(ItemTimeoutError("Operation timeout"), {"increase_timeout": increase_timeout})

        assert result.resolved
        assert result.action == "timeout_extension"
        increase_timeout.assert_called_once()

    def test_validation_without_sanitizer(self):
        """Тест ошибки валидации без функции очистки данных."""
        resolver = ErrorResolver.with_default_rules()

        result = resolver.resolve(OperationError("invalid sku", status=422))

        assert not result.resolved
        assert result.action == "failed"

    def test_failing_rule_is_skipped(self):
        """Тест перехода к следующему правилу после исключения."""
        def broken(error, context):
            raise RuntimeError("resolver bug")

        resolver = ErrorResolver([
            ResolutionRule("broken", ErrorType.SERVER_ERROR, lambda e, c: True, broken),
            ResolutionRule("fallback", ErrorType.SERVER_ERROR, lambda e, c: True, lambda e, c: True),
        ])

        result = resolver.resolve(OperationError("bad gateway", status=502))

        assert result.resolved
        assert result.action == "fallback"

    def test_disabled_and_removed_rules(self):
        """Тест отключенных и удаленных правил."""
        resolver = ErrorResolver.with_default_rules()
        for rule in resolver.get_rules():
            if rule.id == "network_retry":
                rule.enabled = False

        assert not resolver.resolve(NetworkError("down")).resolved

        resolver.remove_rule("rate_limit_backoff")
        assert all(rule.id != "rate_limit_backoff" for rule in resolver.get_rules())
        assert not resolver.resolve(OperationError("slow down", status=429)).resolved


class TestRetryManager:
    """Тесты для менеджера ретраев."""

    def test_exponential_backoff_without_jitter(self):
        """Тест экспоненциального backoff."""
        manager = RetryManager(RetryConfig(base_delay=1.0, jitter=False))

        assert manager.calculate_delay(1) == 1.0
        assert manager.calculate_delay(2) == 2.0
        assert manager.calculate_delay(3) == 4.0

    def test_max_delay_cap(self):
        """Тест ограничения максимальной задержки."""
        manager = RetryManager(RetryConfig(base_delay=1.0, max_delay=3.0, jitter=False))

        assert manager.calculate_delay(5) == 3.0

    def test_linear_and_fixed_strategies(self):
        """Тест линейной и фиксированной стратегий."""
        linear = RetryManager(RetryConfig(base_delay=1.0, jitter=False, strategy=BackoffStrategy.LINEAR))
        fixed = RetryManager(RetryConfig(base_delay=2.0, jitter=False, strategy=BackoffStrategy.FIXED))

        assert [linear.calculate_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]
        assert [fixed.calculate_delay(n) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]

    def test_jitter_bounds(self):
        """Тест диапазона джиттера [0.5, 1.0]."""
        manager = RetryManager(RetryConfig(base_delay=1.0, backoff_factor=2.0))

        for _ in range(50):
            delay = manager.calculate_delay(3)
            assert 2.0 <= delay <= 4.0

    def test_seed_makes_jitter_deterministic(self):
        """Тест воспроизводимости джиттера."""
        first = RetryManager(RetryConfig(seed=7))
        second = RetryManager(RetryConfig(seed=7))

        assert [first.calculate_delay(n) for n in (1, 2, 3)] == [second.calculate_delay(n) for n in (1, 2, 3)]

    def test_non_positive_attempt(self):
        """Тест номера попытки меньше единицы."""
        manager = RetryManager(RetryConfig(base_delay=1.0, jitter=False))

        assert manager.calculate_delay(0) == 1.0

    def test_handle_failure_retries_then_fails(self):
        """Тест ретрая и финального FAILED."""
        manager = RetryManager(RetryConfig(base_delay=1.0, jitter=False))
        item = WorkItem(id="a", max_retries=2)
        error = OperationError("Too many requests", status=429)

        item.mark_processing()
        decision = manager.handle_failure(item, error, now=100.0)

        assert decision.retry
        assert decision.delay == 1.0
        assert item.status == ItemStatus.PENDING
        assert item.retry_count == 1
        assert item.not_before == 101.0
        assert item.error == "Too many requests"
        assert item.last_error.type == ErrorType.RATE_LIMIT

        item.mark_processing()
        decision = manager.handle_failure(item, error, now=200.0)

        assert not decision.retry
        assert item.status == ItemStatus.FAILED
        assert item.retry_count == 2
        assert item.completed_at is not None
        assert len(manager.get_retry_history("a")) == 1
        assert manager.get_stats()['exhausted'] == 1

    def test_retry_condition_short_circuits(self):
        """Тест немедленного FAILED для невременных ошибок."""
        manager = RetryManager(RetryConfig(), retry_condition=retryable_only)
        item = WorkItem(id="a", max_retries=3)

        item.mark_processing()
        decision = manager.handle_failure(item, OperationError("Unauthorized", status=401))

        assert not decision.retry
        assert item.status == ItemStatus.FAILED
        assert item.retry_count == 1
        assert manager.get_stats()['short_circuited'] == 1

    def test_failing_retry_condition_means_no_retry(self):
        """Тест исключения в условии ретрая."""
        def broken(classified, item):
            raise RuntimeError("condition bug")

        manager = RetryManager(RetryConfig(), retry_condition=broken)
        item = WorkItem(id="a", max_retries=3)

        item.mark_processing()
        decision = manager.handle_failure(item, OperationError("Bad Gateway", status=502))

        assert not decision.retry
        assert item.status == ItemStatus.FAILED
        assert item.retry_count == 1

    def test_resolver_retry_after_extends_delay(self):
        """Тест задержки из резолвера ошибок."""
        manager = RetryManager(
            RetryConfig(base_delay=0.01, jitter=False),
            resolver=ErrorResolver.with_default_rules()
        )
        item = WorkItem(id="a", max_retries=3)
        error = OperationError("slow down", status=429, headers={"retry-after": "5"})

        item.mark_processing()
        decision = manager.handle_failure(item, error, now=0.0)

        assert decision.delay == 5.0
        assert decision.resolution.action == "rate_limit_backoff"
        assert item.not_before == 5.0

    def test_clear_history(self):
        """Тест очистки истории ретраев."""
        manager = RetryManager(RetryConfig(jitter=False))
        manager.calculate_delay(1, item_id="a")
        manager.calculate_delay(1, item_id="b")

        manager.clear_history(["a"])
        assert manager.get_retry_history("a") == []
        assert len(manager.get_retry_history("b")) == 1

        manager.clear_history()
        assert manager.get_stats()['items_with_retries'] == 0


class TestRetryWithBackoff:
    """Тесты для ретраев произвольных операций."""

    async def test_success_after_transient_failures(self):
        """Тест успеха после временных ошибок."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise OperationError("Service Unavailable", status=503)
            return "synced"

        on_retry = Mock()
        result = await retry_with_backoff(operation, RetryConfig(base_delay=0.001), on_retry=on_retry)

        assert result.success
        assert result.data == "synced"
        assert result.attempts == 3
        assert len(result.delays) == 2
        assert result.total_delay == pytest.approx(sum(result.delays))
        assert on_retry.call_count == 2

    async def test_non_retryable_error_stops(self):
        """Тест остановки на невременной ошибке."""
        async def operation():
            raise OperationError("Forbidden", status=403)

        result = await retry_with_backoff(operation, RetryConfig(base_delay=0.001))

        assert not result.success
        assert result.attempts == 1
        with pytest.raises(RetryExhaustedError):
            result.unwrap()

    async def test_exhausted_attempts(self):
        """Тест исчерпания попыток."""
        async def operation():
            raise NetworkError("connection reset")

        result = await retry_with_backoff(operation, RetryConfig(max_retries=2, base_delay=0.001))

        assert not result.success
        assert result.attempts == 3
        assert isinstance(result.error, NetworkError)

    async def test_database_operation_retries_connection_errors(self):
        """Тест ретраев операций базы данных."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise OperationError("JWT expired", code="PGRST301")
            return 42

        result = await retry_database_operation(operation, RetryConfig(max_retries=2, base_delay=0.001))

        assert result.success
        assert result.unwrap() == 42
        assert result.attempts == 2


class TestDependencyGate:
    """Тесты для проверки зависимостей."""

    def _registry(self):
        done = WorkItem(id="done")
        done.mark_processing()
        done.mark_completed()

        failed = WorkItem(id="failed")
        failed.mark_processing()
        failed.mark_failed()

        return {"done": done, "failed": failed, "waiting": WorkItem(id="waiting")}

    def test_no_dependencies(self):
        """Тест элемента без зависимостей."""
        gate = DependencyGate({})

        assert gate.can_run(WorkItem(id="a"))

    def test_completed_dependencies(self):
        """Тест завершенных зависимостей."""
        gate = DependencyGate(self._registry())

        assert gate.can_run(WorkItem(id="a", dependencies={"done"}))

    def test_unmet_dependencies(self):
        """Тест незавершенных, упавших и отсутствующих зависимостей."""
        gate = DependencyGate(self._registry())
        item = WorkItem(id="a", dependencies={"done", "waiting", "failed", "ghost"})

        assert not gate.can_run(item)
        assert gate.unmet_dependencies(item) == {
            "failed": "failed",
            "ghost": "missing",
            "waiting": "pending",
        }
        assert gate.is_permanently_blocked(item)

    def test_pending_dependency_is_not_permanent(self):
        """Тест временной блокировки."""
        gate = DependencyGate(self._registry())

        assert not gate.is_permanently_blocked(WorkItem(id="a", dependencies={"waiting"}))


class TestScheduler:
    """Тесты для планировщика."""

    def _items(self):
        created = datetime(2024, 1, 1)
        return [
            WorkItem(id="low", priority=QueuePriority.LOW, created_at=created, sequence=0),
            WorkItem(id="normal-late", priority=QueuePriority.NORMAL, created_at=created + timedelta(seconds=1), sequence=1),
            WorkItem(id="critical", priority=QueuePriority.CRITICAL, created_at=created, sequence=2),
            WorkItem(id="normal-early", priority=QueuePriority.NORMAL, created_at=created, sequence=3),
        ]

    def test_priority_then_creation_order(self):
        """Тест порядка: приоритет, затем время создания."""
        items = self._items()
        scheduler = Scheduler(DependencyGate({item.id: item for item in items}), max_concurrency=10)

        batch = scheduler.next_batch(items, set(), now=0.0)

        assert [item.id for item in batch] == ["critical", "normal-early", "normal-late", "low"]

    def test_sequence_breaks_ties(self):
        """Тест FIFO при одинаковом времени создания."""
        created = datetime(2024, 1, 1)
        items = [WorkItem(id=f"item{i}", created_at=created, sequence=i) for i in (2, 0, 1)]
        scheduler = Scheduler(DependencyGate({item.id: item for item in items}), max_concurrency=10)

        assert [item.id for item in scheduler.next_batch(items, set(), now=0.0)] == ["item0", "item1", "item2"]

    def test_batch_respects_free_slots(self):
        """Тест ограничения размера пакета свободными слотами."""
        items = self._items()
        scheduler = Scheduler(DependencyGate({item.id: item for item in items}), max_concurrency=3)

        batch = scheduler.next_batch(items, {"low"}, now=0.0)

        assert [item.id for item in batch] == ["critical", "normal-early"]

    def test_blocked_and_backoff_items_are_skipped(self):
        """Тест пропуска элементов с зависимостями и в ожидании ретрая."""
        dependent = WorkItem(id="dependent", priority=QueuePriority.CRITICAL, dependencies={"base"})
        base = WorkItem(id="base")
        cooling = WorkItem(id="cooling", priority=QueuePriority.HIGH)
        cooling.mark_processing()
        cooling.mark_retry(not_before=10.0)
        items = [dependent, base, cooling]
        scheduler = Scheduler(DependencyGate({item.id: item for item in items}), max_concurrency=5)

        assert [item.id for item in scheduler.next_batch(items, set(), now=5.0)] == ["base"]
        assert [item.id for item in scheduler.next_batch(items, set(), now=10.0)] == ["cooling", "base"]

    def test_next_wakeup(self):
        """Тест времени до ближайшего ретрая."""
        cooling = WorkItem(id="cooling")
        cooling.mark_processing()
        cooling.mark_retry(not_before=10.0)
        scheduler = Scheduler(DependencyGate({"cooling": cooling}), max_concurrency=1)

        assert scheduler.next_batch([cooling], set(), now=4.0) == []
        assert scheduler.next_wakeup([cooling], set(), now=4.0) == pytest.approx(6.0)
        assert scheduler.next_wakeup([WorkItem(id="fresh")], set(), now=4.0) is None

    def test_invalid_concurrency(self):
        """Тест недопустимого уровня конкурентности."""
        with pytest.raises(ValueError):
            Scheduler(DependencyGate({}), max_concurrency=0)


class TestItemExecutor:
    """Тесты для исполнителя элементов."""

    async def test_async_processor(self):
        """Тест корутинного процессора."""
        executor = ItemExecutor(ExecutionConfig(timeout=1.0))

        async def processor(item):
            await asyncio.sleep(0)
            return item.payload * 2

        outcome = await executor.execute(WorkItem(id="a", payload=21), processor)

        assert outcome.success
        assert outcome.result == 42
        assert executor.get_metrics()['successful_executions'] == 1

    async def test_sync_processor_runs_in_thread(self):
        """Тест синхронного процессора."""
        executor = ItemExecutor(ExecutionConfig(timeout=1.0))

        outcome = await executor.execute(WorkItem(id="a", payload="sku"), lambda item: item.payload.upper())
        executor.shutdown()

        assert outcome.success
        assert outcome.result == "SKU"

    async def test_processor_error_is_returned(self):
        """Тест ошибки процессора."""
        executor = ItemExecutor()

        async def processor(item):
            raise OperationError("Bad Gateway", status=502)

        outcome = await executor.execute(WorkItem(id="a"), processor)

        assert not outcome.success
        assert isinstance(outcome.error, OperationError)
        assert executor.get_metrics()['failed_executions'] == 1

    async def test_timeout(self):
        """Тест таймаута."""
        executor = ItemExecutor(ExecutionConfig(timeout=0.05))

        async def processor(item):
            await asyncio.sleep(1.0)

        outcome = await executor.execute(WorkItem(id="a"), processor)

        assert not outcome.success
        assert outcome.timed_out
        assert isinstance(outcome.error, ItemTimeoutError)
        assert classify_error(outcome.error).type == ErrorType.TIMEOUT
        assert executor.get_metrics()['timeout_executions'] == 1

    async def test_item_timeout_overrides_config(self):
        """Тест таймаута элемента."""
        executor = ItemExecutor(ExecutionConfig(timeout=10.0))

        async def processor(item):
            await asyncio.sleep(1.0)

        outcome = await executor.execute(WorkItem(id="a", timeout=0.05), processor)

        assert outcome.timed_out

    async def test_no_timeout(self):
        """Тест выполнения без ограничения времени."""
        executor = ItemExecutor(ExecutionConfig(timeout=None))

        async def processor(item):
            return "ok"

        outcome = await executor.execute(WorkItem(id="a"), processor)

        assert outcome.result == "ok"

    def test_reset_metrics(self):
        """Тест сброса метрик."""
        executor = ItemExecutor()
        executor._update_metrics(0.5, True)

        executor.reset_metrics()

        metrics = executor.get_metrics()
        assert metrics['total_executions'] == 0
        assert metrics['min_execution_time'] == 0.0


class TestLogMetrics:
    """Тесты для обработчика метрик логов."""

    def test_counts_by_level(self):
        """Тест подсчета записей по уровням."""
        handler = MetricsHandler()
        test_logger = logging.getLogger("batch_queue.tests.metrics")
        test_logger.setLevel(logging.DEBUG)
        test_logger.addHandler(handler)

        try:
            test_logger.debug("debug")
            test_logger.info("info")
            test_logger.warning("warning", extra=item_extra("a", "rate_limit"))
            test_logger.error("error", extra=item_extra("a", "rate_limit"))
        finally:
            test_logger.removeHandler(handler)

        metrics = handler.get_metrics()
        assert metrics['total_logs'] == 4
        assert metrics['error_count'] == 1
        assert metrics['warning_count'] == 1
        assert metrics['errors_by_type'] == {"rate_limit": 2}

        handler.reset_metrics()
        assert handler.get_metrics()['total_logs'] == 0
        assert handler.get_metrics()['errors_by_type'] == {}

    def test_formatter_item_column(self):
        """Тест колонки id элемента в форматтере."""
        formatter = BatchQueueFormatter()
        plain = logging.LogRecord("urllib3", logging.INFO, __file__, 1, "request sent", None, None)
        tagged = logging.LogRecord("batch_queue", logging.INFO, __file__, 1, "completed", None, None)
        tagged.item_id = "sync_1_0"

        assert "| - " in formatter.format(plain)
        assert "| sync_1_0 " in formatter.format(tagged)


if __name__ == "__main__":
    pytest.main([__file__])
