import asyncio

from content_server import ContentServer
from condition_poller.http_check import wait_for_content
from condition_poller.models import PollerSettings


async def main():
    PORT = 8000
    server = ContentServer(ready_after=8.0, ready_text="Application ready", error_rate=0.2)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    settings = PollerSettings(interval=1.0, timeout=30.0, request_timeout=5.0)

    outcome = await wait_for_content(
        f"http://localhost:{PORT}/status",
        required_text="Application ready",
        settings=settings,
    )
    print(f"Final status: {outcome.status.value}")
    print(f"Checks: {outcome.attempts}")
    print(f"Total time: {outcome.elapsed:.6f}s")

    await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
