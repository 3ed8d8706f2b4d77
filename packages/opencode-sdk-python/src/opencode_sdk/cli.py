"""Command line front end: run a supervised OpenCode server in the foreground."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import contextlib
from pathlib import Path
import signal

from .config import OpencodeConfig
from .events import Event
from .exceptions import OpencodeError
from .log import configure_logging, get_logger
from .server import OpencodeServer


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="opencode-sdk")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="start an OpenCode server and stream its events")
    serve.add_argument(
        "--dir",
        default="",
        help="directory for opencode to operate in (defaults to the current directory)",
    )
    serve.add_argument("--config-dir", default="", help="existing isolated config directory")
    serve.add_argument(
        "--config-files",
        default="",
        help="directory of config templates staged into a fresh config directory",
    )
    serve.add_argument(
        "--timeout", type=float, default=15.0, help="seconds to wait for readiness"
    )
    return parser


def _log_event(event: Event) -> None:
    logger.info("Event received", type=event.type)


async def serve(args: argparse.Namespace) -> int:
    session_dir = Path(args.dir) if args.dir else Path.cwd()
    session_dir.mkdir(parents=True, exist_ok=True)

    overrides: dict[str, object] = {"cwd": str(session_dir)}
    if args.config_dir:
        overrides["config_dir"] = args.config_dir
    if args.config_files:
        overrides["config_files"] = Path(args.config_files)
    server = OpencodeServer(OpencodeConfig.from_env(**overrides))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    print(f"Starting OpenCode server in directory: {session_dir}")
    try:
        try:
            await server.start()
            await server.wait_for_ready(timeout=args.timeout)
        except OpencodeError as exc:
            logger.error("Failed to start opencode", err=str(exc))
            return 1

        print(f"OpenCode server is ready at: http://{server.addr}")
        print("Press Ctrl+C to stop the server")

        async with server.client() as client:
            try:
                await client.stream_events(_log_event, stop=stop)
            except OpencodeError as exc:
                logger.warning("Event stream failed", err=str(exc))
        await stop.wait()
        print("\nStopping OpenCode server...")
        return 0
    finally:
        await server.stop()
        await server.cleanup()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "serve":
        return asyncio.run(serve(args))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
