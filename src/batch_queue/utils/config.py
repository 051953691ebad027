"""
Загрузка и сохранение конфигурации очереди.
"""

import json
import os
from typing import Any, Dict, Union
from dataclasses import asdict
from pathlib import Path

import yaml

from ..core.batch_queue import QueueConfig
from ..core.retry_manager import RetryConfig, BackoffStrategy
from ..core.task_executor import ExecutionConfig
from ..exceptions import ConfigurationError


def config_to_dict(config: QueueConfig) -> Dict[str, Any]:
    """Преобразование в словарь, пригодный для YAML/JSON."""
    data = asdict(config)
    data['retry']['strategy'] = config.retry.strategy.value
    data['retry']['jitter_range'] = list(config.retry.jitter_range)
    return data


def config_from_dict(data: Dict[str, Any]) -> QueueConfig:
    """Создание из словаря."""
    data = dict(data or {})
    retry_data = data.pop('retry', None) or {}
    execution_data = data.pop('execution', None) or {}

    try:
        config = QueueConfig(
            retry=RetryConfig(**retry_data),
            execution=ExecutionConfig(**execution_data),
            **data
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    config.validate()
    return config


def load_config(file_path: Union[str, Path]) -> QueueConfig:
    """
    Загрузка конфигурации из файла.

    Args:
        file_path: Путь к файлу конфигурации (.yaml, .yml или .json)

    Returns:
        Объект конфигурации
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        if file_path.suffix.lower() in ['.yaml', '.yml']:
            data = yaml.safe_load(f)
        elif file_path.suffix.lower() == '.json':
            data = json.load(f)
        else:
            raise ConfigurationError(f"Unsupported configuration file format: {file_path.suffix}")

    return config_from_dict(data or {})


def save_config(config: QueueConfig, file_path: Union[str, Path], format: str = 'yaml'):
    """
    Сохранение конфигурации в файл.

    Args:
        config: Объект конфигурации
        file_path: Путь к файлу
        format: Формат файла ('yaml' или 'json')
    """
    file_path = Path(file_path)
    data = config_to_dict(config)

    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        if format.lower() == 'yaml':
            yaml.safe_dump(data, f, default_flow_style=False, indent=2)
        elif format.lower() == 'json':
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            raise ConfigurationError(f"Unsupported format: {format}")


def _cast_env(name: str, value: str, cast):
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e


def _optional_float(value: str):
    if value.lower() in ('none', 'null', 'off'):
        return None
    return float(value)


def _bool(value: str) -> bool:
    return value.lower() in ('1', 'true', 'yes', 'on')


_ENV_FIELDS = {
    'BATCH_QUEUE_MAX_CONCURRENCY': (None, 'max_concurrency', int),
    'BATCH_QUEUE_BATCH_DELAY': (None, 'batch_delay', float),
    'BATCH_QUEUE_LOG_LEVEL': (None, 'log_level', str),
    'RETRY_MAX_RETRIES': ('retry', 'max_retries', int),
    'RETRY_BASE_DELAY': ('retry', 'base_delay', float),
    'RETRY_MAX_DELAY': ('retry', 'max_delay', float),
    'RETRY_BACKOFF_FACTOR': ('retry', 'backoff_factor', float),
    'RETRY_JITTER': ('retry', 'jitter', _bool),
    'RETRY_STRATEGY': ('retry', 'strategy', BackoffStrategy),
    'EXECUTION_TIMEOUT': ('execution', 'timeout', _optional_float),
}


def load_config_from_env() -> QueueConfig:
    """
    Загрузка конфигурации из переменных окружения.

    Returns:
        Объект конфигурации
    """
    config_data: Dict[str, Any] = {}

    for env_name, (section, key, cast) in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if not raw:
            continue
        value = _cast_env(env_name, raw, cast)
        if section is None:
            config_data[key] = value
        else:
            config_data.setdefault(section, {})[key] = value

    return config_from_dict(config_data)


def merge_configs(base_config: QueueConfig, override: Dict[str, Any]) -> QueueConfig:
    """
    Объединение конфигурации с переопределениями.

    Args:
        base_config: Базовая конфигурация
        override: Словарь переопределений (вложенные секции retry/execution)

    Returns:
        Объединенная конфигурация
    """
    def merge_dicts(base: dict, extra: dict) -> dict:
        result = base.copy()
        for key, value in extra.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge_dicts(result[key], value)
            else:
                result[key] = value
        return result

    return config_from_dict(merge_dicts(config_to_dict(base_config), override))
