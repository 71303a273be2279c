"""Error taxonomy for netmeter."""

from typing import Optional

from netmeter.models import ErrorInfo


class NetmeterError(Exception):
    """Base error with a stable machine-readable code."""

    code = "netmeter_error"
    default_message = "Unexpected netmeter error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_info(self) -> ErrorInfo:
        """Convert to the published error record."""
        return ErrorInfo(code=self.code, message=self.message)


class InterfaceAccessError(NetmeterError):
    """The OS interface table could not be enumerated."""

    code = "interface_access"
    default_message = "Failed to retrieve network interfaces"


class NoActiveInterface(NetmeterError):
    """No physical interface is currently usable."""

    code = "no_active_interface"
    default_message = "No active network interfaces found"


class ExternalIPFetchFailed(NetmeterError):
    """Every external IP service failed."""

    code = "external_ip_fetch_failed"
    default_message = "Failed to fetch external IP address"


class PersistenceError(NetmeterError):
    """Daily statistics could not be read or written."""

    code = "persistence"
    default_message = "Failed to persist daily statistics"


class InvalidInterval(NetmeterError):
    """A sampling or publish interval was not positive."""

    code = "invalid_interval"
    default_message = "Intervals must be greater than zero"
