"""
Очередь пакетной обработки с приоритетами, зависимостями и ретраями с backoff.

Основные компоненты:
- BatchQueue: очередь и цикл управления прогоном
- Scheduler: выбор пакета по приоритету с учетом зависимостей
- ItemExecutor: выполнение элементов с таймаутом
- RetryManager: backoff и повторные попытки
- classify_error / ErrorResolver: классификация и автоматическое разрешение ошибок
"""

from .core.batch_queue import BatchQueue, QueueConfig
from .core.dependency_gate import DependencyGate
from .core.scheduler import Scheduler
from .core.task_executor import ItemExecutor, ExecutionConfig
from .core.retry_manager import (
    RetryManager,
    RetryConfig,
    RetryResult,
    BackoffStrategy,
    retry_always,
    retryable_only,
    retry_with_backoff,
    retry_api_call,
    retry_database_operation
)
from .core.error_classifier import (
    ErrorType,
    ClassifiedError,
    classify_error,
    ErrorResolver,
    ResolutionRule,
    ResolutionResult
)
from .models.item import (
    WorkItem,
    ItemStatus,
    QueuePriority,
    create_sync_batch,
    create_import_batch,
    create_export_batch
)
from .models.queue_stats import QueueStats, QueueRunStatus
from .utils.config import load_config, save_config, load_config_from_env
from .utils.logger import get_logger, setup_logging
from .utils.monitoring import QueueMonitor
from .exceptions import (
    BatchQueueError,
    QueueConflictError,
    InvalidTransitionError,
    ConfigurationError,
    ValidationError,
    RetryExhaustedError,
    ItemTimeoutError,
    OperationError,
    NetworkError
)

__version__ = "1.0.0"

__all__ = [
    "BatchQueue",
    "QueueConfig",
    "DependencyGate",
    "Scheduler",
    "ItemExecutor",
    "ExecutionConfig",
    "RetryManager",
    "RetryConfig",
    "RetryResult",
    "BackoffStrategy",
    "retry_always",
    "retryable_only",
    "retry_with_backoff",
    "retry_api_call",
    "retry_database_operation",
    "ErrorType",
    "ClassifiedError",
    "classify_error",
    "ErrorResolver",
    "ResolutionRule",
    "ResolutionResult",
    "WorkItem",
    "ItemStatus",
    "QueuePriority",
    "create_sync_batch",
    "create_import_batch",
    "create_export_batch",
    "QueueStats",
    "QueueRunStatus",
    "load_config",
    "save_config",
    "load_config_from_env",
    "get_logger",
    "setup_logging",
    "QueueMonitor",
    "BatchQueueError",
    "QueueConflictError",
    "InvalidTransitionError",
    "ConfigurationError",
    "ValidationError",
    "RetryExhaustedError",
    "ItemTimeoutError",
    "OperationError",
    "NetworkError"
]
