"""
Классификация ошибок и автоматическое разрешение типовых сбоев.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional
from dataclasses import dataclass

import requests

from ..exceptions import ItemTimeoutError, NetworkError
from ..utils.logger import get_logger


logger = get_logger(__name__)


class ErrorType(Enum):
    """Типы ошибок."""
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


RETRYABLE_ERROR_TYPES = frozenset({
    ErrorType.NETWORK,
    ErrorType.RATE_LIMIT,
    ErrorType.TIMEOUT,
    ErrorType.SERVER_ERROR,
})

USER_MESSAGES = {
    ErrorType.NETWORK: "Network connection issue. Please check your internet connection.",
    ErrorType.AUTHENTICATION: "Authentication failed. Please check your credentials.",
    ErrorType.AUTHORIZATION: "Access denied. You do not have permission for this action.",
    ErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorType.VALIDATION: "Invalid data provided. Please check your input.",
    ErrorType.SERVER_ERROR: "Server error occurred. Please try again later.",
    ErrorType.TIMEOUT: "Operation timed out. Please try again.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again or contact support.",
}

# Порядок важен: первое совпадение побеждает
_STATUS_TYPES = {
    401: ErrorType.AUTHENTICATION,
    403: ErrorType.AUTHORIZATION,
    429: ErrorType.RATE_LIMIT,
    408: ErrorType.TIMEOUT,
    504: ErrorType.TIMEOUT,
    422: ErrorType.VALIDATION,
}

_NETWORK_EXCEPTIONS = (NetworkError, ConnectionError, requests.exceptions.ConnectionError)
_TIMEOUT_EXCEPTIONS = (ItemTimeoutError, TimeoutError, asyncio.TimeoutError, requests.exceptions.Timeout)


@dataclass(frozen=True)
class ClassifiedError:
    """Классифицированная ошибка."""
    type: ErrorType
    message: str
    retryable: bool
    user_message: str
    original_error: Any = None
    status: Optional[int] = None
    code: Optional[str] = None


def _get_field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def extract_status(error: Any) -> Optional[int]:
    """HTTP-статус ошибки, если он есть (включая requests.HTTPError)."""
    for name in ('status', 'status_code'):
        value = _get_field(error, name)
        if isinstance(value, int):
            return value

    response = _get_field(error, 'response')
    if response is not None:
        value = _get_field(response, 'status_code')
        if value is None:
            value = _get_field(response, 'status')
        if isinstance(value, int):
            return value

    return None


def extract_message(error: Any) -> str:
    """Текст ошибки."""
    if isinstance(error, str):
        return error
    if isinstance(error, Mapping):
        return str(error.get('message') or error)
    message = str(error)
    if not message and isinstance(error, BaseException):
        return type(error).__name__
    return message


def _classified(error_type: ErrorType, error: Any, message: str, status, code) -> ClassifiedError:
    return ClassifiedError(
        type=error_type,
        message=message,
        retryable=error_type in RETRYABLE_ERROR_TYPES,
        user_message=USER_MESSAGES[error_type],
        original_error=error,
        status=status,
        code=code
    )


def _is_network_error(error: Any, code: Optional[str]) -> bool:
    if isinstance(error, _NETWORK_EXCEPTIONS):
        return True
    if code == 'NETWORK_ERROR':
        return True
    return type(error).__name__ == 'NetworkError'


def _is_timeout_error(error: Any, message: str, code: Optional[str]) -> bool:
    if isinstance(error, _TIMEOUT_EXCEPTIONS):
        return True
    if code == 'ETIMEDOUT':
        return True
    lowered = message.lower()
    return 'timeout' in lowered or 'timed out' in lowered


def classify_error(error: Any) -> ClassifiedError:
    """
    Классификация произвольной ошибки.

    Порядок проверок: сетевой маркер, HTTP-статус, "fetch" в тексте ошибки,
    признак таймаута, иначе UNKNOWN.

    Args:
        error: Исключение, словарь с полями message/status/code или любое значение

    Returns:
        Классифицированная ошибка
    """
    message = extract_message(error)
    status = extract_status(error)
    code = _get_field(error, 'code')
    if code is not None and not isinstance(code, str):
        code = str(code)

    if _is_network_error(error, code):
        return _classified(ErrorType.NETWORK, error, message, status, code)

    if status is not None:
        if status in _STATUS_TYPES:
            return _classified(_STATUS_TYPES[status], error, message, status, code)
        if status >= 500:
            return _classified(ErrorType.SERVER_ERROR, error, message, status, code)

    # Браузерные и HTTP-клиенты сообщают об обрыве как "Failed to fetch"
    if 'fetch' in message.lower():
        return _classified(ErrorType.NETWORK, error, message, status, code)

    if _is_timeout_error(error, message, code):
        return _classified(ErrorType.TIMEOUT, error, message, status, code)

    return _classified(ErrorType.UNKNOWN, error, message, status, code)


def is_retryable(error: Any) -> bool:
    """Быстрая проверка: относится ли ошибка к временным."""
    return classify_error(error).retryable


@dataclass
class ResolutionRule:
    """Правило автоматического разрешения ошибки."""
    id: str
    error_type: ErrorType
    condition: Callable[[Any, Optional[Dict[str, Any]]], bool]
    resolution: Callable[[Any, Optional[Dict[str, Any]]], Any]
    description: str = ""
    enabled: bool = True


@dataclass
class ResolutionResult:
    """Результат попытки разрешения."""
    resolved: bool
    action: str
    message: str
    retry_after: Optional[float] = None


class ErrorResolver:
    """
    Упорядоченный список правил (условие + обработчик).

    Условия должны быть чистыми функциями. Обработчики могут иметь побочные
    эффекты, но должны допускать повторный вызов. Обработчик возвращает
    False/None, если не справился, True или число секунд до повтора,
    если справился.
    """

    def __init__(self, rules: Optional[List[ResolutionRule]] = None):
        self._rules: List[ResolutionRule] = list(rules or [])

    @classmethod
    def with_default_rules(cls) -> 'ErrorResolver':
        """Резолвер с правилами по умолчанию."""
        return cls(default_rules())

    def add_rule(self, rule: ResolutionRule):
        self._rules.append(rule)

    def remove_rule(self, rule_id: str):
        self._rules = [rule for rule in self._rules if rule.id != rule_id]

    def get_rules(self) -> List[ResolutionRule]:
        return list(self._rules)

    def resolve(self, error: Any, context: Optional[Dict[str, Any]] = None) -> ResolutionResult:
        """
        Попытка автоматически разрешить ошибку.

        Args:
            error: Ошибка
            context: Контекст вызывающего (колбэки, элемент очереди)

        Returns:
            Результат разрешения
        """
        classified = classify_error(error)

        matching = []
        for rule in self._rules:
            if not rule.enabled or rule.error_type != classified.type:
                continue
            try:
                if rule.condition(error, context):
                    matching.append(rule)
            except Exception as e:
                logger.error(f"Condition of resolution rule {rule.id} failed: {e}")

        if not matching:
            return ResolutionResult(
                resolved=False,
                action="none",
                message="No automatic resolution available for this error type"
            )

        for rule in matching:
            try:
                logger.debug(f"Attempting resolution: {rule.description}")
                outcome = rule.resolution(error, context)
            except Exception as e:
                logger.error(f"Resolution failed for rule {rule.id}: {e}")
                continue

            if outcome:
                retry_after = None
                if not isinstance(outcome, bool) and isinstance(outcome, (int, float)):
                    retry_after = float(outcome)
                logger.info(f"Auto-resolved {classified.type.value} error: {rule.description}")
                return ResolutionResult(
                    resolved=True,
                    action=rule.id,
                    message=f"Automatically resolved: {rule.description}",
                    retry_after=retry_after
                )

        return ResolutionResult(
            resolved=False,
            action="failed",
            message="All automatic resolution attempts failed"
        )


def _headers(error: Any) -> Mapping:
    headers = _get_field(error, 'headers')
    if not headers:
        response = _get_field(error, 'response')
        if response is not None:
            headers = _get_field(response, 'headers')
    return headers or {}


def _header(headers: Mapping, name: str) -> Any:
    for key, value in headers.items():
        if str(key).lower() == name:
            return value
    return None


def rate_limit_wait(error: Any, context: Optional[Dict[str, Any]] = None) -> float:
    """Секунды ожидания сброса лимита из заголовков ответа (по умолчанию 60)."""
    headers = _headers(error)
    for name in ('retry-after', 'x-ratelimit-reset'):
        value = _header(headers, name)
        if value is None:
            continue
        try:
            return max(float(value), 0.0)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparsable {name} header: {value!r}")
    return 60.0


def _message_contains(error: Any, *needles: str) -> bool:
    lowered = extract_message(error).lower()
    return any(needle in lowered for needle in needles)


def _call_context(context: Optional[Dict[str, Any]], key: str) -> bool:
    callback = (context or {}).get(key)
    if callback is None:
        return False
    callback()
    return True


def default_rules() -> List[ResolutionRule]:
    """Правила по умолчанию: лимиты, сеть, таймауты, валидация."""
    return [
        ResolutionRule(
            id="rate_limit_backoff",
            error_type=ErrorType.RATE_LIMIT,
            condition=lambda error, context: (
                extract_status(error) == 429
                or _message_contains(error, "rate limit", "too many requests")
            ),
            resolution=rate_limit_wait,
            description="Wait for rate limit reset before retrying"
        ),
        ResolutionRule(
            id="network_retry",
            error_type=ErrorType.NETWORK,
            condition=lambda error, context: True,
            resolution=lambda error, context: 2.0,
            description="Retry after temporary network issues"
        ),
        ResolutionRule(
            id="timeout_extension",
            error_type=ErrorType.TIMEOUT,
            condition=lambda error, context: True,
            resolution=lambda error, context: _call_context(context, "increase_timeout"),
            description="Extend timeout for operations that are taking longer"
        ),
        ResolutionRule(
            id="data_validation_fix",
            error_type=ErrorType.VALIDATION,
            condition=lambda error, context: (
                extract_status(error) == 422
                or _message_contains(error, "validation", "invalid")
            ),
            resolution=lambda error, context: _call_context(context, "sanitize_data"),
            description="Automatically clean data to fix validation errors"
        ),
    ]
