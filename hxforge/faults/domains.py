"""
Domain-specific fault types used across the runtime.
"""

from __future__ import annotations

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# SECURITY Faults
# ============================================================================

class SecurityFault(Fault):
    """Base class for security faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.WARN,
        public: bool = True,
        status: int = 403,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.SECURITY,
            severity=severity,
            retryable=False,
            public=public,
            status=status,
            metadata=metadata,
        )


class CSRFViolationFault(SecurityFault):
    """Cross-origin state-changing request rejected."""

    def __init__(self, reason: str = "cross-origin request rejected", **kwargs):
        self.reason = reason
        super().__init__(
            code="CSRF_VIOLATION",
            message=reason,
            metadata={"reason": reason, **kwargs.get("metadata", {})},
        )


class RateLimitExceededFault(SecurityFault):
    """Rate limit exceeded for client."""

    def __init__(self, limit: int, window: float, retry_after: float = 0.0, **kwargs):
        self.limit = limit
        self.window = window
        self.retry_after = retry_after
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message=f"Rate limit of {limit} requests per {window:g}s exceeded",
            severity=Severity.INFO,
            status=429,
            metadata={
                "limit": limit,
                "window": window,
                "retry_after": retry_after,
                **kwargs.get("metadata", {}),
            },
        )
