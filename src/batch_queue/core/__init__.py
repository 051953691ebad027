"""
Основные компоненты очереди пакетной обработки.
"""

from .batch_queue import BatchQueue, QueueConfig
from .dependency_gate import DependencyGate
from .error_classifier import (
    ErrorType,
    ClassifiedError,
    classify_error,
    ErrorResolver,
    ResolutionRule,
    ResolutionResult
)
from .retry_manager import RetryManager, RetryConfig, BackoffStrategy
from .scheduler import Scheduler
from .task_executor import ItemExecutor, ExecutionConfig

__all__ = [
    "BatchQueue",
    "QueueConfig",
    "DependencyGate",
    "ErrorType",
    "ClassifiedError",
    "classify_error",
    "ErrorResolver",
    "ResolutionRule",
    "ResolutionResult",
    "RetryManager",
    "RetryConfig",
    "BackoffStrategy",
    "Scheduler",
    "ItemExecutor",
    "ExecutionConfig"
]
