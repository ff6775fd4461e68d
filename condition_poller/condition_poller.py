import asyncio
import inspect
from typing import Optional, Tuple

from loguru import logger
from condition_poller.exceptions import TargetNotFoundError
from condition_poller.models import PollOutcome, PollRequest, PollStatus


class ConditionPoller:
    """Polls a condition until it holds or a timeout expires, then escalates once.

    A poller holds no per-operation state, so one instance can run any number
    of independent polls concurrently.
    """

    def __init__(self):
        self.logger = logger

    def _now(self) -> float:
        return asyncio.get_event_loop().time()

    async def _sleep(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Waits for delay seconds. Returns True if cancel_event was set first"""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _evaluate(self, request: PollRequest) -> Tuple[bool, Optional[str]]:
        """Evaluates the condition once, absorbing every failure except a missing target"""
        try:
            result = request.condition()
            if inspect.isawaitable(result):
                result = await result
            return bool(result), None
        except TargetNotFoundError:
            raise
        except Exception as e:
            self.logger.debug(f"Check for {request.description} failed: {e!r}")
            return False, str(e) or type(e).__name__

    async def _escalate(self, request: PollRequest) -> Optional[str]:
        """Runs the escalation action and returns its error message, if any"""
        self.logger.warning(
            f"{request.description} not reached after {request.timeout}s, escalating"
        )
        try:
            result = request.escalate()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Escalation for {request.description} failed: {e}")
            return str(e) or type(e).__name__
        return None

    async def poll(
        self, request: PollRequest, cancel_event: Optional[asyncio.Event] = None
    ) -> PollOutcome:
        """Poll request.condition every request.interval seconds until it holds or
        request.timeout elapses, escalating once if an escalation is configured"""
        start_time = self._now()
        deadline = start_time + request.timeout
        attempts = 0
        last_error = None

        def finish(status: PollStatus, **fields) -> PollOutcome:
            outcome = PollOutcome(
                status=status,
                elapsed=self._now() - start_time,
                attempts=attempts,
                last_error=fields.pop("last_error", last_error),
                **fields,
            )
            self.logger.info(
                f"Polling {request.description} finished: {status.value} "
                f"after {outcome.elapsed:.2f}s ({attempts} checks)"
            )
            return outcome

        try:
            while True:
                attempts += 1
                met, error = await self._evaluate(request)
                if met:
                    return finish(PollStatus.succeeded)
                last_error = error or last_error

                remaining = deadline - self._now()
                if remaining <= 0:
                    break

                delay = min(request.interval, remaining)
                self.logger.debug(
                    f"{request.description} not reached, waiting {delay:.2f}s before next check"
                )
                if await self._sleep(delay, cancel_event):
                    return finish(PollStatus.cancelled)
        except TargetNotFoundError as e:
            return finish(PollStatus.not_found, last_error=str(e))

        if cancel_event is not None and cancel_event.is_set():
            return finish(PollStatus.cancelled)
        if request.escalate is None:
            return finish(PollStatus.timed_out)

        escalation_error = await self._escalate(request)
        if await self._sleep(request.post_escalation_grace, cancel_event):
            return finish(
                PollStatus.cancelled, escalated=True, escalation_error=escalation_error
            )

        attempts += 1
        try:
            met, error = await self._evaluate(request)
        except TargetNotFoundError as e:
            return finish(
                PollStatus.not_found,
                escalated=True,
                escalation_error=escalation_error,
                last_error=str(e),
            )

        return finish(
            PollStatus.succeeded if met else PollStatus.failed,
            escalated=True,
            escalation_error=escalation_error,
            last_error=error or last_error,
        )
