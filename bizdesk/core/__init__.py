"""Core configuration, errors and utilities."""

from bizdesk.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitBreakerRegistry
from bizdesk.core.config import BackendConfig, BackendKind, Settings, get_settings
from bizdesk.core.notifier import ChangeNotifier

__all__ = [
    "BackendConfig",
    "BackendKind",
    "ChangeNotifier",
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitBreakerRegistry",
    "Settings",
    "get_settings",
]
