import argparse
import asyncio
import sys
from typing import List, Optional

import pydantic
from loguru import logger
from condition_poller.exceptions import PollerError
from condition_poller.http_check import wait_for_content
from condition_poller.logging_setup import configure_logging
from condition_poller.models import PollerSettings, PollOutcome, PollStatus
from condition_poller.service_control import ServiceManager

EXIT_CODES = {
    PollStatus.succeeded: 0,
    PollStatus.timed_out: 1,
    PollStatus.failed: 1,
    PollStatus.not_found: 2,
    PollStatus.cancelled: 130,
}
EXIT_CONTROL_ERROR = 3

FLAG_NAMES = {
    "timeout": "--timeout",
    "interval": "--interval",
    "post_escalation_grace": "--grace",
}


def build_parser(settings: PollerSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="condition-poller",
        description="Wait for Windows services or web pages to reach a desired state",
    )
    parser.add_argument("--log-level", default=settings.log.level)
    parser.add_argument("--log-file", default=settings.log.file)
    commands = parser.add_subparsers(dest="command", required=True)

    def add_timing(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--timeout", type=float, default=settings.timeout)
        sub.add_argument("--interval", type=float, default=settings.interval)

    wait_http = commands.add_parser("wait-http", help="wait until a URL serves some content")
    wait_http.add_argument("--url", required=True)
    wait_http.add_argument("--contains", default=None, help="text the page must contain")
    add_timing(wait_http)

    stop = commands.add_parser("stop-service", help="stop a service, killing it on timeout")
    stop.add_argument("name")
    stop.add_argument("--no-kill", action="store_true", help="never kill the service process")
    stop.add_argument("--grace", type=float, default=settings.post_escalation_grace)
    add_timing(stop)

    start = commands.add_parser("start-service", help="start a service and wait until running")
    start.add_argument("name")
    add_timing(start)

    return parser


def apply_arguments(args: argparse.Namespace, settings: PollerSettings) -> PollerSettings:
    """Overlay the timing flags on settings, validating them like the defaults"""
    overrides = {"timeout": args.timeout, "interval": args.interval}
    if getattr(args, "grace", None) is not None:
        overrides["post_escalation_grace"] = args.grace
    return PollerSettings.model_validate({**settings.model_dump(), **overrides})


async def run(args: argparse.Namespace, settings: PollerSettings) -> PollOutcome:
    if args.command == "wait-http":
        return await wait_for_content(args.url, required_text=args.contains, settings=settings)

    manager = ServiceManager(settings=settings)
    if args.command == "stop-service":
        return await manager.stop_service(args.name, force=not args.no_kill)
    return await manager.start_service(args.name)


def main(argv: Optional[List[str]] = None) -> int:
    settings = PollerSettings.from_env()
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    try:
        settings = apply_arguments(args, settings)
    except pydantic.ValidationError as e:
        flags = ", ".join(FLAG_NAMES.get(error["loc"][0], str(error["loc"][0])) for error in e.errors())
        parser.error(f"invalid value for {flags}")

    configure_logging(
        settings.log.model_copy(update={"level": args.log_level.upper(), "file": args.log_file})
    )

    try:
        outcome = asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_CODES[PollStatus.cancelled]
    except PollerError as e:
        logger.error(str(e))
        return EXIT_CONTROL_ERROR

    if outcome.escalation_error:
        logger.error(f"Escalation failed: {outcome.escalation_error}")
    print(
        f"{outcome.status.value} in {outcome.elapsed:.2f}s "
        f"(checks: {outcome.attempts}, escalated: {outcome.escalated})"
    )
    return EXIT_CODES[outcome.status]


if __name__ == "__main__":
    sys.exit(main())
