"""Exception taxonomy for condition polling.

- ``TargetNotFoundError``: the polled target does not exist. The poller
  stops immediately instead of waiting out its timeout.
- ``ServiceControlError``: a graceful service control request was refused.

Transport failures during a condition check are not represented here: they
are absorbed by the poller and count as "not ready yet".
"""

from typing import Optional


class PollerError(Exception):
    """Base exception for condition-poller errors.

    Attributes:
        message: Human-readable error description.
        retryable: Whether waiting longer could change the result.
    """

    default_retryable: bool = False

    def __init__(self, message: str = "", *, retryable: Optional[bool] = None) -> None:
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        super().__init__(message)


class TargetNotFoundError(PollerError):
    """The target of a condition check does not exist."""


class ServiceNotFoundError(TargetNotFoundError):
    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"Service {service_name!r} does not exist")


class ServiceControlError(PollerError):
    """A service control request (stop/start) failed.

    Attributes:
        service_name: Name of the service.
        action: The requested action, ``"stop"`` or ``"start"``.
        exit_code: Exit code reported by the control tool.
    """

    def __init__(self, service_name: str, action: str, exit_code: int, detail: str = "") -> None:
        self.service_name = service_name
        self.action = action
        self.exit_code = exit_code
        message = f"Failed to {action} service {service_name!r} (exit code {exit_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
