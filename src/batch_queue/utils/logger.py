"""
Система логирования для очереди пакетной обработки.

Записи о конкретном элементе несут поле item_id (и error_type для упавших
попыток), переданное через extra; форматтер выводит их отдельной колонкой,
а обработчик метрик считает ошибки по типам.
"""

import logging
import sys
import threading
from typing import Any, Dict, Optional
from pathlib import Path


NO_ITEM = "-"


class BatchQueueFormatter(logging.Formatter):
    """Форматтер с колонкой id элемента."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-28s | %(threadName)-15s | %(item_id)-24s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record):
        # Записи сторонних библиотек приходят без item_id
        if not hasattr(record, 'item_id'):
            record.item_id = NO_ITEM
        return super().format(record)


class MetricsHandler(logging.Handler):
    """Считает записи по уровням и упавшие попытки по типам ошибок."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self._errors_by_type: Dict[str, int] = {}
        self.reset_metrics()

    def emit(self, record):
        if record.levelno >= logging.ERROR:
            level_key = 'error_count'
        elif record.levelno >= logging.WARNING:
            level_key = 'warning_count'
        elif record.levelno >= logging.INFO:
            level_key = 'info_count'
        else:
            level_key = 'debug_count'

        error_type = getattr(record, 'error_type', None)

        with self._lock:
            self._counts['total_logs'] += 1
            self._counts[level_key] += 1
            if error_type:
                self._errors_by_type[error_type] = self._errors_by_type.get(error_type, 0) + 1

    def get_metrics(self) -> Dict[str, Any]:
        """Получение метрик логов."""
        with self._lock:
            metrics: Dict[str, Any] = dict(self._counts)
            metrics['errors_by_type'] = dict(self._errors_by_type)
        return metrics

    def reset_metrics(self):
        """Сброс метрик."""
        with self._lock:
            self._counts = {
                'total_logs': 0,
                'error_count': 0,
                'warning_count': 0,
                'info_count': 0,
                'debug_count': 0
            }
            self._errors_by_type = {}


# Глобальный обработчик метрик
_metrics_handler = MetricsHandler()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_metrics: bool = True,
    log_format: Optional[str] = None
):
    """
    Настройка системы логирования.

    Args:
        level: Уровень логирования (обычно QueueConfig.log_level)
        log_file: Путь к файлу логов
        enable_console: Включить вывод в консоль
        enable_metrics: Включить сбор метрик
        log_format: Кастомный формат логов
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format) if log_format else BatchQueueFormatter()

    handlers = []
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if enable_metrics:
        _metrics_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(_metrics_handler)

    # HTTP-клиенты процессоров шумят на DEBUG
    for noisy in ('urllib3', 'requests', 'asyncio'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Получение логгера для модуля.

    Args:
        name: Имя модуля

    Returns:
        Объект логгера
    """
    return logging.getLogger(name)


def item_extra(item_id: str, error_type: Optional[str] = None) -> Dict[str, str]:
    """Поля extra для записи о конкретном элементе."""
    extra = {'item_id': item_id}
    if error_type:
        extra['error_type'] = error_type
    return extra


def get_log_metrics() -> Dict[str, Any]:
    """Получение метрик логов."""
    return _metrics_handler.get_metrics()


def reset_log_metrics():
    """Сброс метрик логов."""
    _metrics_handler.reset_metrics()
