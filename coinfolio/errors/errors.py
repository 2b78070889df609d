"""
Exceptions raised by the coin store and its collaborators.

Exception hierarchy:
- CoinfolioError (base)
  - StorageFault: backend unreachable, write rejected, encode/decode failure
  - NotFound: a coin identifier that does not exist
  - ConfigurationError: invalid configuration
"""

from __future__ import annotations

from typing import Any, Optional


class CoinfolioError(Exception):
    """Base exception for all coinfolio errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class StorageFault(CoinfolioError):
    """Raised when the backend cannot be reached, rejects a write, or holds undecodable data."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.operation = operation
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, component=component, details=details)


class NotFound(CoinfolioError):
    """Raised when an operation references a coin that is not stored."""

    def __init__(
        self,
        coin_id: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.coin_id = coin_id
        details = details or {}
        details["coin_id"] = coin_id
        super().__init__(f"Coin '{coin_id}' not found", component=component, details=details)


class ConfigurationError(CoinfolioError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)
