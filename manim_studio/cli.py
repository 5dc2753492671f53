"""Command line front end for the Manim rendering backend."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict
import json
import signal
import sys
from typing import Any

from manim_studio.config import QUALITY_CHOICES, ClientConfig, load_client_config
from manim_studio.core.types import GenerationRequest, JobStatus
from manim_studio.errors import ApiError, describe_error
from manim_studio.integrations.manim_client import ManimHttpClient
from manim_studio.logging import configure_logging, get_logger
from manim_studio.services.generation_service import GenerationService
from manim_studio.services.health import HealthService
from manim_studio.services.library_service import LibraryService
from manim_studio.utils.cancellation import CancellationToken

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _build_parser(config: ClientConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manim-studio",
        description="Generate Manim animations from natural-language prompts",
    )
    parser.add_argument("--api-url", help=f"Backend base URL (default: {config.base_url})")
    parser.add_argument("--timeout-ms", type=int, help="Per-request timeout in milliseconds")
    parser.add_argument("--poll-interval-ms", type=int, help="Delay between status queries")
    parser.add_argument("--log-level", help=f"Logging level (default: {config.log_level})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Render a video and wait for it")
    generate.add_argument("prompt", help="Description of the animation")
    generate.add_argument(
        "--quality",
        choices=QUALITY_CHOICES,
        default=config.default_quality,
        help="Render quality (default: %(default)s)",
    )
    generate.add_argument(
        "--no-ai", dest="use_ai", action="store_false", help="Disable AI prompt enhancement"
    )
    generate.add_argument("--download", metavar="PATH", help="Save the finished video here")

    status = subparsers.add_parser("status", help="Show the status of a job")
    status.add_argument("video_id")

    download = subparsers.add_parser("download", help="Download a rendered video")
    download.add_argument("video_id")
    download.add_argument("--output", metavar="PATH", help="File or directory to write to")

    delete = subparsers.add_parser("delete", help="Delete one or more videos")
    delete.add_argument("video_ids", nargs="+")

    subparsers.add_parser("health", help="Check whether the backend is reachable")
    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_progress(snapshot: JobStatus) -> None:
    print(f"[{snapshot.status or 'unknown'}] {snapshot.job_id}", flush=True)


async def _generate(args: argparse.Namespace, config: ClientConfig, token: CancellationToken) -> int:
    client = ManimHttpClient.from_config(config)
    service = GenerationService.from_config(config, client)
    request = GenerationRequest(prompt=args.prompt, quality=args.quality, use_ai=args.use_ai)
    result = await service.generate_with_polling(request, _print_progress, token=token)
    _print_json(result.to_dict())
    if args.download:
        library = LibraryService.from_config(config, client)
        path = await library.download_to_path(result.job_id, args.download, token=token)
        print(f"Saved {path}")
    return EXIT_OK


async def _status(args: argparse.Namespace, config: ClientConfig, token: CancellationToken) -> int:
    service = GenerationService.from_config(config)
    snapshot = await service.get_status(args.video_id, token=token)
    _print_json(snapshot.to_dict())
    return EXIT_OK


async def _download(args: argparse.Namespace, config: ClientConfig, token: CancellationToken) -> int:
    library = LibraryService.from_config(config)
    path = await library.download_to_path(args.video_id, args.output, token=token)
    print(f"Saved {path}")
    return EXIT_OK


async def _delete(args: argparse.Namespace, config: ClientConfig, token: CancellationToken) -> int:
    library = LibraryService.from_config(config)
    outcomes = await library.delete_many(args.video_ids)
    _print_json([asdict(outcome) for outcome in outcomes])
    return EXIT_OK if all(outcome.success for outcome in outcomes) else EXIT_FAILED


async def _health(args: argparse.Namespace, config: ClientConfig, token: CancellationToken) -> int:
    report = await HealthService.from_config(config).check()
    _print_json(asdict(report))
    return EXIT_OK if report.healthy else EXIT_FAILED


_COMMANDS: dict[str, Callable[[argparse.Namespace, ClientConfig, CancellationToken], Awaitable[int]]] = {
    "generate": _generate,
    "status": _status,
    "download": _download,
    "delete": _delete,
    "health": _health,
}


async def _run(args: argparse.Namespace, config: ClientConfig) -> int:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.signal)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler unavailable; Ctrl-C will abort without cleanup")
    try:
        return await _COMMANDS[args.command](args, config, token)
    except ApiError as exc:
        print(describe_error(exc), file=sys.stderr)
        logger.debug("Command %s failed: %r", args.command, exc)
        return EXIT_CANCELLED if exc.cancelled else EXIT_FAILED
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def main(argv: Sequence[str] | None = None) -> int:
    base_config = load_client_config()
    parser = _build_parser(base_config)
    args = parser.parse_args(argv)
    config = base_config.with_overrides(
        base_url=args.api_url.rstrip("/") if args.api_url else None,
        timeout_ms=args.timeout_ms,
        poll_interval_ms=args.poll_interval_ms,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    configure_logging(config.log_level)
    return asyncio.run(_run(args, config))


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover
    run()
