from typing import Dict, List, Optional

import pytest
from condition_poller.condition_poller import ConditionPoller
from condition_poller.exceptions import ServiceControlError, ServiceNotFoundError
from condition_poller.models import ServiceState


class VirtualClockPoller(ConditionPoller):
    """Poller whose sleeps advance a virtual clock instead of waiting"""

    def __init__(self):
        super().__init__()
        self.clock = 0.0
        self.sleeps: List[float] = []

    def _now(self) -> float:
        return self.clock

    async def _sleep(self, delay, cancel_event) -> bool:
        self.sleeps.append(delay)
        if cancel_event is not None and cancel_event.is_set():
            return True
        self.clock += delay
        return False


class FakeService:
    def __init__(
        self,
        state: ServiceState,
        pid: Optional[int] = 4321,
        settles_after: Optional[int] = None,
    ):
        self.state = state
        self.pid = pid
        # status queries until a requested transition completes; None hangs forever
        self.settles_after = settles_after
        self.pending: Optional[ServiceState] = None
        self.countdown = 0
        self.pid_drift = False


class FakeServiceControl:
    def __init__(self):
        self.services: Dict[str, FakeService] = {}
        self.requests: List[tuple] = []
        self.killed: List[int] = []
        self.kill_error: Optional[Exception] = None
        self.request_error_code: Optional[int] = None

    def add(self, name: str, service: FakeService) -> FakeService:
        self.services[name] = service
        return service

    def _service(self, name: str) -> FakeService:
        if name not in self.services:
            raise ServiceNotFoundError(name)
        return self.services[name]

    def status(self, name: str) -> ServiceState:
        service = self._service(name)
        if service.pid_drift and service.pid is not None:
            service.pid += 1
        if service.pending is not None and service.settles_after is not None:
            if service.countdown <= 0:
                service.state = service.pending
                service.pending = None
                if service.state == ServiceState.stopped:
                    service.pid = None
            else:
                service.countdown -= 1
        return service.state

    def pid(self, name: str) -> Optional[int]:
        return self._service(name).pid

    def kill(self, pid: int) -> None:
        if self.kill_error is not None:
            raise self.kill_error
        self.killed.append(pid)
        for service in self.services.values():
            if service.pid == pid:
                service.state = ServiceState.stopped
                service.pid = None
                service.pending = None

    async def _request(self, action: str, name: str, target: ServiceState) -> None:
        self.requests.append((action, name))
        service = self._service(name)
        if self.request_error_code is not None:
            raise ServiceControlError(name, action, self.request_error_code, "Access is denied.")
        service.state = (
            ServiceState.stop_pending
            if target == ServiceState.stopped
            else ServiceState.start_pending
        )
        service.pending = target
        service.countdown = service.settles_after or 0

    async def request_stop(self, name: str) -> None:
        await self._request("stop", name, ServiceState.stopped)

    async def request_start(self, name: str) -> None:
        await self._request("start", name, ServiceState.running)


@pytest.fixture
def virtual_poller() -> VirtualClockPoller:
    return VirtualClockPoller()


@pytest.fixture
def service_control() -> FakeServiceControl:
    return FakeServiceControl()
