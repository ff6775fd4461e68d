import asyncio
from typing import Optional

import aiohttp
from loguru import logger
from condition_poller.condition_poller import ConditionPoller
from condition_poller.models import PollerSettings, PollOutcome, PollRequest


class HttpContentCheck:
    """Condition that holds once a GET to url returns 200 and, if required_text
    is set, the body contains it. Transport failures count as "not ready"."""

    def __init__(
        self,
        url: str,
        required_text: Optional[str] = None,
        request_timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.required_text = required_text
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.session = session
        self.logger = logger

    async def _fetch(self, session: aiohttp.ClientSession) -> bool:
        async with session.get(self.url, timeout=self.timeout) as response:
            if response.status != 200:
                self.logger.debug(f"{self.url} answered HTTP {response.status}")
                return False
            if self.required_text is None:
                return True

            body = await response.text()
            if self.required_text not in body:
                self.logger.debug(f"{self.url} does not contain {self.required_text!r} yet")
                return False
            return True

    async def __call__(self) -> bool:
        try:
            if self.session is not None:
                return await self._fetch(self.session)
            async with aiohttp.ClientSession() as session:
                return await self._fetch(session)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Request to {self.url} failed: {e!r}")
            return False


async def wait_for_content(
    url: str,
    required_text: Optional[str] = None,
    settings: Optional[PollerSettings] = None,
    cancel_event: Optional[asyncio.Event] = None,
    poller: Optional[ConditionPoller] = None,
) -> PollOutcome:
    """Poll url until it serves required_text (or any 200 response), within settings.timeout"""
    settings = settings or PollerSettings()
    poller = poller or ConditionPoller()

    async with aiohttp.ClientSession() as session:
        check = HttpContentCheck(
            url,
            required_text=required_text,
            request_timeout=settings.request_timeout,
            session=session,
        )
        request = PollRequest(
            condition=check,
            interval=settings.interval,
            timeout=settings.timeout,
            description=f"content at {url}",
        )
        return await poller.poll(request, cancel_event=cancel_event)
