import os
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Condition = Callable[[], Union[bool, Awaitable[bool]]]
Escalation = Callable[[], Any]


class PollStatus(str, Enum):
    succeeded = "succeeded"
    timed_out = "timed_out"
    failed = "failed"
    not_found = "not_found"
    cancelled = "cancelled"


class ServiceState(str, Enum):
    running = "running"
    paused = "paused"
    start_pending = "start_pending"
    pause_pending = "pause_pending"
    continue_pending = "continue_pending"
    stop_pending = "stop_pending"
    stopped = "stopped"
    unknown = "unknown"


class PollRequest(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    condition: Condition
    interval: float = Field(gt=0)
    timeout: float = Field(ge=0)
    escalate: Optional[Escalation] = None
    post_escalation_grace: float = Field(default=2.0, ge=0)
    description: str = "condition"


class PollOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PollStatus
    escalated: bool = False
    elapsed: float
    attempts: int = 0
    escalation_error: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PollStatus.succeeded

    @property
    def cancelled(self) -> bool:
        return self.status == PollStatus.cancelled


class LogSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    file: Optional[str] = None
    rotation: str = "10 MB"  # size threshold for the file sink
    retention: int = 5
    colorize: bool = True


class PollerSettings(BaseModel):
    """Process-wide defaults, built once at startup and passed to call sites"""

    model_config = ConfigDict(frozen=True)

    interval: float = Field(default=1.0, gt=0)
    timeout: float = Field(default=30.0, ge=0)
    post_escalation_grace: float = Field(default=2.0, ge=0)
    request_timeout: float = Field(default=10.0, gt=0)
    log: LogSettings = LogSettings()

    @classmethod
    def from_env(cls) -> "PollerSettings":
        """Load settings from POLLER_* environment variables.

        Raises ValueError for unparsable numbers and pydantic's
        ValidationError for out-of-range values.
        """
        return cls(
            interval=float(os.getenv("POLLER_INTERVAL", "1.0")),
            timeout=float(os.getenv("POLLER_TIMEOUT", "30.0")),
            post_escalation_grace=float(os.getenv("POLLER_GRACE", "2.0")),
            request_timeout=float(os.getenv("POLLER_REQUEST_TIMEOUT", "10.0")),
            log=LogSettings(
                level=os.getenv("POLLER_LOG_LEVEL", "INFO").upper(),
                file=os.getenv("POLLER_LOG_FILE") or None,
                rotation=os.getenv("POLLER_LOG_ROTATION", "10 MB"),
            ),
        )
