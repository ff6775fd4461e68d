import asyncio
from typing import Optional

import psutil
from loguru import logger
from condition_poller.condition_poller import ConditionPoller
from condition_poller.exceptions import ServiceControlError, ServiceNotFoundError
from condition_poller.models import (
    PollerSettings,
    PollOutcome,
    PollRequest,
    PollStatus,
    ServiceState,
)

# sc.exe exit codes
SC_SERVICE_ALREADY_RUNNING = 1056
SC_SERVICE_DOES_NOT_EXIST = 1060
SC_SERVICE_NOT_ACTIVE = 1062


class ServiceControl:
    """Windows service control surface: psutil for queries and process kills,
    sc.exe for graceful stop/start requests"""

    def __init__(self, sc_command: str = "sc.exe"):
        self.sc_command = sc_command
        self.logger = logger

    def _get(self, name: str):
        try:
            return psutil.win_service_get(name)
        except psutil.NoSuchProcess as e:
            raise ServiceNotFoundError(name) from e

    def status(self, name: str) -> ServiceState:
        try:
            raw = self._get(name).status()
        except psutil.NoSuchProcess as e:
            raise ServiceNotFoundError(name) from e
        try:
            return ServiceState(raw)
        except ValueError:
            return ServiceState.unknown

    def pid(self, name: str) -> Optional[int]:
        """Returns the process id backing the service, queried live, or None"""
        try:
            pid = self._get(name).pid()
        except psutil.NoSuchProcess as e:
            raise ServiceNotFoundError(name) from e
        return pid or None

    def kill(self, pid: int) -> None:
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            self.logger.debug(f"Process {pid} already exited")

    async def _run_sc(self, action: str, name: str, ignored_code: int) -> None:
        process = await asyncio.create_subprocess_exec(
            self.sc_command,
            action,
            name,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        code = process.returncode
        if code in (0, ignored_code):
            return
        if code == SC_SERVICE_DOES_NOT_EXIST:
            raise ServiceNotFoundError(name)

        detail = (stderr or stdout).decode(errors="replace").strip()
        raise ServiceControlError(name, action, code, detail)

    async def request_stop(self, name: str) -> None:
        await self._run_sc("stop", name, SC_SERVICE_NOT_ACTIVE)

    async def request_start(self, name: str) -> None:
        await self._run_sc("start", name, SC_SERVICE_ALREADY_RUNNING)


class ServiceManager:
    def __init__(
        self,
        control: Optional[ServiceControl] = None,
        settings: Optional[PollerSettings] = None,
        poller: Optional[ConditionPoller] = None,
    ):
        self.control = control or ServiceControl()
        self.settings = settings or PollerSettings()
        self.poller = poller or ConditionPoller()
        self.logger = logger

    def _kill_backing_process(self, name: str) -> None:
        """Force-terminates the process currently backing the service.

        The pid is looked up here rather than before polling: the service may
        have been restarted under a new process in the meantime.
        """
        pid = self.control.pid(name)
        if pid is None:
            self.logger.info(f"Service {name!r} has no process left to kill")
            return
        self.logger.warning(f"Killing process {pid} backing service {name!r}")
        self.control.kill(pid)

    def _in_state(self, name: str, state: ServiceState) -> bool:
        current = self.control.status(name)
        self.logger.debug(f"Service {name!r} is {current.value}")
        return current == state

    async def _transition(
        self,
        name: str,
        target: ServiceState,
        request: PollRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> PollOutcome:
        started = asyncio.get_event_loop().time()
        try:
            if self._in_state(name, target):
                self.logger.info(f"Service {name!r} is already {target.value}")
                return PollOutcome(
                    status=PollStatus.succeeded,
                    elapsed=asyncio.get_event_loop().time() - started,
                    attempts=1,
                )
            if cancel_event is not None and cancel_event.is_set():
                return PollOutcome(
                    status=PollStatus.cancelled,
                    elapsed=asyncio.get_event_loop().time() - started,
                    attempts=1,
                )
            if target == ServiceState.stopped:
                await self._request(self.control.request_stop, name, request.escalate is None)
            else:
                await self._request(self.control.request_start, name, True)
        except ServiceNotFoundError as e:
            self.logger.error(str(e))
            return PollOutcome(
                status=PollStatus.not_found,
                elapsed=asyncio.get_event_loop().time() - started,
                attempts=1,
                last_error=str(e),
            )

        return await self.poller.poll(request, cancel_event=cancel_event)

    async def _request(self, action, name: str, fatal: bool) -> None:
        """Sends a graceful control request. Failures only propagate when no
        escalation can follow"""
        try:
            await action(name)
        except ServiceControlError as e:
            if fatal:
                raise
            self.logger.warning(f"{e}; waiting for forced termination")

    async def stop_service(
        self,
        name: str,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        force: bool = True,
        grace: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Stop a service, killing its process if it is still running after timeout.

        The returned elapsed time covers the wait after the stop request; the
        initial status query and the sc.exe call are not part of it. A set
        cancel_event is honoured before the request is sent and while waiting.
        """
        request = PollRequest(
            condition=lambda: self._in_state(name, ServiceState.stopped),
            interval=self.settings.interval if interval is None else interval,
            timeout=self.settings.timeout if timeout is None else timeout,
            escalate=(lambda: self._kill_backing_process(name)) if force else None,
            post_escalation_grace=(
                self.settings.post_escalation_grace if grace is None else grace
            ),
            description=f"service {name!r} stopped",
        )
        return await self._transition(name, ServiceState.stopped, request, cancel_event)

    async def start_service(
        self,
        name: str,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Start a service and wait until it reports running. Like stop_service,
        elapsed only counts the wait after the start request"""
        request = PollRequest(
            condition=lambda: self._in_state(name, ServiceState.running),
            interval=self.settings.interval if interval is None else interval,
            timeout=self.settings.timeout if timeout is None else timeout,
            description=f"service {name!r} running",
        )
        return await self._transition(name, ServiceState.running, request, cancel_event)
