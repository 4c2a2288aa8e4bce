"""
HXForge Faults - Structured error handling.

Every failure the runtime knows about is a ``Fault``: a typed exception with
a stable code, a domain, a severity and an HTTP status.
"""

from .core import DOMAIN_STATUS, Fault, FaultDomain, Severity
from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    CSRFViolationFault,
    RateLimitExceededFault,
    SecurityFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_STATUS",
    "ConfigFault",
    "ConfigInvalidFault",
    "SecurityFault",
    "CSRFViolationFault",
    "RateLimitExceededFault",
]
