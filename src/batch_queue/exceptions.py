"""
Исключения для очереди пакетной обработки.
"""

from typing import Any, Dict, Optional


class BatchQueueError(Exception):
    """Базовое исключение для очереди пакетной обработки."""
    pass


class QueueConflictError(BatchQueueError):
    """Очередь уже запущена."""
    pass


class InvalidTransitionError(BatchQueueError):
    """Недопустимый переход статуса элемента."""
    pass


class ConfigurationError(BatchQueueError):
    """Ошибка конфигурации."""
    pass


class ValidationError(BatchQueueError):
    """Ошибка валидации."""
    pass


class RetryExhaustedError(BatchQueueError):
    """Исчерпаны все попытки ретрая."""
    pass


class ItemTimeoutError(BatchQueueError):
    """Элемент не уложился в отведенное время."""

    code = "ETIMEDOUT"

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class OperationError(BatchQueueError):
    """
    Ошибка внешней операции (синхронизация, импорт, экспорт).

    Процессоры бросают её, чтобы передать классификатору HTTP-статус
    и код ошибки.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.status = status
        self.code = code
        self.headers = headers or {}


class NetworkError(OperationError):
    """Сетевая ошибка: соединение не установлено или разорвано."""

    def __init__(self, message: str, code: Optional[str] = "NETWORK_ERROR", **kwargs):
        super().__init__(message, code=code, **kwargs)
