"""
Verifier Service - Entry Point
==============================

Starts the ZK insurance verifier TCP server.

Usage:
    zk-insurance-verifier [--port 8080] [--max-sessions 16]
    python -m services.verifier --circuit-dir ./noir-circuit

Exit codes:
    0 - clean shutdown (SIGINT / SIGTERM)
    1 - the listening port could not be bound

Version: 0.1.0
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from services.verifier.context import ServiceContext
from services.verifier.server import VerifierServer
from shared.config import OverflowPolicy, Settings, get_settings
from shared.logging import get_logger, setup_logging


logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ZK Insurance Verifier TCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Connect using: nc 127.0.0.1 8080  or  telnet 127.0.0.1 8080",
    )

    parser.add_argument("--host", help="Interface to bind (default: VERIFIER_HOST or 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--max-sessions",
        type=int,
        help="Maximum number of concurrent sessions",
    )
    parser.add_argument(
        "--overflow-policy",
        choices=[p.value for p in OverflowPolicy],
        help="What to do with connections beyond --max-sessions",
    )
    parser.add_argument("--circuit-dir", type=Path, help="Noir circuit project directory")
    parser.add_argument("--timeout", type=float, help="Per-stage proving timeout in seconds")

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Apply command line overrides on top of the environment settings."""
    base = base or get_settings()

    server_updates = {
        key: value
        for key, value in {
            "host": args.host,
            "port": args.port,
            "max_sessions": args.max_sessions,
            "overflow_policy": OverflowPolicy(args.overflow_policy) if args.overflow_policy else None,
        }.items()
        if value is not None
    }
    prover_updates = {
        key: value
        for key, value in {
            "circuit_dir": args.circuit_dir,
            "timeout_seconds": args.timeout,
        }.items()
        if value is not None
    }

    return base.model_copy(
        update={
            "server": base.server.model_copy(update=server_updates),
            "prover": base.prover.model_copy(update=prover_updates),
        }
    )


async def serve(settings: Settings, stop: asyncio.Event | None = None) -> int:
    """
    Run the server until `stop` is set or a termination signal arrives.

    Returns:
        Process exit code
    """
    server = VerifierServer(ServiceContext.from_settings(settings))

    try:
        await server.start()
    except OSError as e:
        logger.error(
            "verifier_bind_failed",
            host=settings.server.host,
            port=settings.server.port,
            error=str(e),
        )
        return 1

    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available on Windows or outside the main thread
            pass

    try:
        await stop.wait()
    finally:
        logger.info("verifier_shutting_down")
        for sig in installed:
            loop.remove_signal_handler(sig)
        await server.close()

    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)

    setup_logging(
        log_level=settings.log_level.value,
        json_logs=settings.is_production,
        service_name=settings.service_name,
    )
    logger.info(
        "verifier_starting",
        environment=settings.environment.value,
        circuit_dir=str(settings.prover.circuit_dir),
    )

    return asyncio.run(serve(settings))


if __name__ == "__main__":
    sys.exit(main())
