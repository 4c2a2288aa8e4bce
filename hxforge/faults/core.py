"""
HXForge Faults - Core types and fault taxonomy.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the log level used when the fault is reported.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.SESSION = FaultDomain("session", "Session storage and lifecycle")
FaultDomain.SECURITY = FaultDomain("security", "Security policy violations")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.SESSION: {"severity": Severity.ERROR, "retryable": True},
    FaultDomain.SECURITY: {"severity": Severity.WARN, "retryable": False},
}

# HTTP status used by the recovery middleware when a fault escapes a handler
DOMAIN_STATUS = {
    FaultDomain.CONFIG: 500,
    FaultDomain.SESSION: 503,
    FaultDomain.SECURITY: 403,
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    A fault carries:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Public exposure control

    Faults are raised where the failure happens and converted to an HTTP
    status by ``RecoveryMiddleware``. Middleware that answers a request
    directly (rate limiting, CSRF) attaches the fault to the response as
    ``response._fault`` instead of raising it.
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: bool = False,
        status: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        self.public = public
        self.status = status if status is not None else DOMAIN_STATUS.get(self.domain, 500)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"Fault(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize fault to a dictionary suitable for structured logs."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "status": self.status,
            "metadata": self.metadata,
        }
