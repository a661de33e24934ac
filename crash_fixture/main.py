"""
Crash fixture entry point.

Usage:
  python -m crash_fixture                      # PORT + NODE_APP_INSTANCE, crash on /crash when ENABLE_CRASH=true
  python -m crash_fixture --variant stable 9000
  CRASH_POLICY=always python -m crash_fixture

Exit: 0 on SIGTERM/SIGINT, 1 when the port cannot be bound, SIGABRT on a deliberate crash.
"""
import argparse
import asyncio
import os
import signal
import sys
from typing import Mapping, Sequence

from crash_fixture import observability
from crash_fixture.config import FixtureConfig, resolve_config
from crash_fixture.errors import StartupFailure
from crash_fixture.logging_utils import get_json_logger, log_error_event, log_event
from crash_fixture.server import FixtureServer

logger = get_json_logger("crash-fixture")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TCP fixture for exercising a supervisor's crash and respawn handling")
    parser.add_argument("port", nargs="?", default=None, help="Base port, overrides PORT")
    parser.add_argument("--port", "-p", dest="port_option", default=None, help="Same as the positional port")
    parser.add_argument(
        "--variant",
        default=None,
        help="instance | stable | crashing | route (default: FIXTURE_VARIANT, else instance)",
    )
    return parser


VALUE_OPTIONS = ("--port", "-p", "--variant")


def known_argv(argv: Sequence[str]) -> list[str]:
    """
    Keep our own options and a numeric positional port; drop everything else.

    A supervisor may pass options meant for other tools. An unknown option and
    the bare value after it are skipped so neither can be taken for the port.
    """
    known: list[str] = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg.split("=", 1)[0] in VALUE_OPTIONS:
            if "=" in arg:
                known.append(arg)
            elif i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                known += [arg, argv[i + 1]]
                i += 1
        elif arg.startswith("-"):
            if "=" not in arg and i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                i += 1
        elif arg.strip().isdigit():
            known.append(arg)
        i += 1
    return known


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    args, _extra = build_parser().parse_known_args(known_argv(argv))
    return args


def config_from_args(argv: Sequence[str], environ: Mapping[str, str] | None = None) -> FixtureConfig:
    args = parse_args(argv)
    port = args.port_option or args.port
    return resolve_config(os.environ if environ is None else environ, [port] if port else [], args.variant)


async def run(config: FixtureConfig, stop_signals: Sequence[int] = (signal.SIGTERM, signal.SIGINT)) -> int:
    if config.startup_delay_ms:
        log_event(logger, "fixture_starting", delay_ms=config.startup_delay_ms, msg=f"Starting on port {config.port}...")
        await asyncio.sleep(config.startup_delay_ms / 1000)

    observability.setup_metrics()
    if config.metrics_port:
        try:
            observability.start_metrics_server(config.metrics_port, config.host)
            log_event(logger, "metrics_listening", port=config.metrics_port)
        except OSError as exc:
            log_error_event(logger, "metrics_server_failed", exc, port=config.metrics_port, msg=str(exc))

    # Handlers go in before the readiness line so a stop right after it is graceful.
    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in stop_signals:
        try:
            loop.add_signal_handler(sig, stopped.set)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on this platform; default handling applies.
            pass

    fixture = FixtureServer(config, logger)
    await fixture.start()
    await stopped.wait()

    log_event(logger, "fixture_stopping", pid=os.getpid(), port=config.port, msg="Received stop signal, shutting down...")
    await fixture.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    config = config_from_args(sys.argv[1:] if argv is None else argv)
    try:
        return asyncio.run(run(config))
    except StartupFailure as exc:
        log_error_event(logger, "startup_failed", exc, host=exc.host, port=exc.port, pid=os.getpid(), msg=str(exc))
        return 1


def entrypoint() -> None:
    sys.exit(main())


if __name__ == "__main__":
    entrypoint()
