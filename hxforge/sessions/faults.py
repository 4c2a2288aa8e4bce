"""
Session fault definitions.

All session errors are structured Faults, not bare exceptions.
"""

from hxforge.faults.core import Fault, FaultDomain, Severity


class SessionFault(Fault):
    """Base class for session-related faults."""

    domain = FaultDomain.SESSION


class SessionStoreUnavailableFault(SessionFault):
    """
    Session store is unavailable.

    Transient: a retry may succeed. Raised for connection failures, timeouts
    and protocol errors talking to the backing store.
    """

    code = "SESSION_STORE_UNAVAILABLE"
    message = "Session storage unavailable"

    def __init__(self, store_name: str, cause: str | None = None, **kwargs):
        super().__init__(severity=Severity.ERROR, retryable=True, status=503, **kwargs)
        self.store_name = store_name
        self.cause = cause
        if cause:
            self.message = f"Session store '{store_name}' unavailable: {cause}"
        else:
            self.message = f"Session store '{store_name}' unavailable"

