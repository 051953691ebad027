"""
Базовый пример использования очереди пакетной обработки.
"""

import asyncio
import random

from batch_queue import (
    BatchQueue,
    QueueConfig,
    RetryConfig,
    ExecutionConfig,
    ErrorResolver,
    QueuePriority,
    WorkItem,
    create_sync_batch,
    create_import_batch,
    create_export_batch,
    setup_logging
)
from batch_queue.exceptions import NetworkError, OperationError


async def sync_product(item: WorkItem) -> dict:
    """Имитация синхронизации товара с маркетплейсом."""
    await asyncio.sleep(random.uniform(0.05, 0.2))

    roll = random.random()
    if roll < 0.15:
        raise OperationError("Too many requests", status=429, headers={"Retry-After": "0.5"})
    if roll < 0.25:
        raise NetworkError("Connection reset by peer")

    return {"sku": item.payload, "synced": True}


def import_row(item: WorkItem) -> int:
    """Синхронный импорт строки (выполняется в пуле потоков)."""
    if item.payload.get("price", 0) < 0:
        raise OperationError(f"Invalid price for {item.payload['sku']}", status=422)
    return item.payload["price"]


async def export_report(item: WorkItem) -> str:
    """Экспорт отчета, зависящий от синхронизации."""
    await asyncio.sleep(0.1)
    return f"report:{item.payload}"


def on_progress(completed: int, total: int, item: WorkItem):
    print(f"   [{completed}/{total}] {item.id} -> {item.result}")


def on_error(error: BaseException, item: WorkItem):
    print(f"   Элемент {item.id} упал после {item.retry_count} попыток: {error}")


async def main():
    """Основная функция с примерами использования."""
    config = QueueConfig(
        max_concurrency=3,
        batch_delay=0.05,
        retry=RetryConfig(max_retries=3, base_delay=0.2, max_delay=2.0),
        execution=ExecutionConfig(timeout=5.0),
        log_level="WARNING"
    )
    setup_logging(level=config.log_level)

    print("=== Базовый пример очереди пакетной обработки ===\n")

    # Пример 1: синхронизация с ретраями и резолвером ошибок
    print("1. Синхронизация товаров:")
    queue = BatchQueue(
        config,
        on_progress=on_progress,
        on_error=on_error,
        error_resolver=ErrorResolver.with_default_rules()
    )
    skus = [f"SKU-{i:03d}" for i in range(8)]
    queue.add(create_sync_batch(skus[:2], priority=QueuePriority.HIGH))
    queue.add(create_sync_batch(skus[2:]))

    await queue.start(sync_product)

    stats = queue.get_stats()
    print(f"   Завершено: {stats.completed}, с ошибками: {stats.failed}, "
          f"пропускная способность: {stats.throughput:.1f}/мин")

    # Пример 2: импорт синхронной функцией
    print("\n2. Импорт строк:")
    rows = [{"sku": "A", "price": 100}, {"sku": "B", "price": -1}, {"sku": "C", "price": 250}]
    import_queue = BatchQueue(config, on_progress=on_progress, on_error=on_error)
    import_queue.add(create_import_batch(rows))

    await import_queue.start(import_row)

    # Пример 3: экспорт после синхронизации
    print("\n3. Экспорт с зависимостью:")
    export_queue = BatchQueue(config, on_progress=on_progress)
    export_queue.add_item(WorkItem(id="sync-catalog", payload="catalog"))
    export_items = create_export_batch(["daily-sales"], priority=QueuePriority.CRITICAL)
    export_items[0].dependencies.add("sync-catalog")
    export_queue.add(export_items)

    await export_queue.start(export_report)

    print("\n=== Метрики ===")
    metrics = queue.get_metrics()
    print(f"Всего элементов: {metrics['total']}")
    print(f"Среднее время обработки: {metrics['average_processing_time']:.3f}s")
    print(f"Ретраев: {metrics['retry_metrics']['total_retries']}")
    print(f"Таймаутов: {metrics['execution_metrics']['timeout_executions']}")


if __name__ == "__main__":
    asyncio.run(main())
