#!/usr/bin/env python3
"""
gateway-bootstrap — Set up, start and stop the local LLM gateway.

Usage:
    gateway-bootstrap setup [--runtime native] [--model NAME] [--non-interactive]
    gateway-bootstrap start
    gateway-bootstrap stop

`setup` is safe to re-run: every step skips when its work is already done.
Exit status is 0 on success (warnings included), 1 on a fatal error and 130
when interrupted.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable

from gateway_bootstrap.config import build_run_config
from gateway_bootstrap.engine import (
    BootstrapContext,
    build_context,
    collect_warnings,
    run_pipeline,
    run_start,
    run_stop,
)
from gateway_bootstrap.exceptions import BootstrapError
from gateway_bootstrap.lock import held_lock
from gateway_bootstrap.models import RuntimeKind
from gateway_bootstrap.summary import render_warnings

logger = logging.getLogger("gateway_bootstrap.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project-dir",
        help="Directory holding .env, config.yaml and docker-compose.yml (default: cwd)",
    )
    common.add_argument(
        "--runtime",
        choices=[kind.value for kind in RuntimeKind],
        help="Where Ollama runs: in the compose stack or natively on the host",
    )
    common.add_argument("--model", help="Ollama model served by the primary route")
    common.add_argument("--port", type=int, help="Gateway port (default: 4000)")
    common.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; missing secrets come from the environment or stay unset",
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="gateway-bootstrap",
        description="Local LLM gateway bootstrap (Ollama + LiteLLM)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup = subparsers.add_parser(
        "setup", parents=[common], help="Converge the full gateway setup"
    )
    setup.add_argument("--report", help="Write a JSON run report to this path")
    subparsers.add_parser("start", parents=[common], help="Start a configured gateway")
    subparsers.add_parser("stop", parents=[common], help="Stop the gateway stack")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    return build_parser().parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    return {
        "project_dir": args.project_dir,
        "runtime": args.runtime,
        "model": args.model,
        "port": args.port,
        "interactive": not args.non_interactive,
        "report_path": getattr(args, "report", None),
    }


def _setup(ctx: BootstrapContext) -> None:
    results = run_pipeline(ctx)
    warnings = collect_warnings(results)
    if warnings:
        ctx.out(render_warnings(warnings))
    if ctx.config.report_path is not None:
        logger.info("Run report: %s", ctx.config.report_path)


def _start(ctx: BootstrapContext) -> None:
    run_start(ctx)


def _stop(ctx: BootstrapContext) -> None:
    run_stop(ctx)


COMMANDS: dict[str, Callable[[BootstrapContext], None]] = {
    "setup": _setup,
    "start": _start,
    "stop": _stop,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_run_config(_overrides(args))
        ctx = build_context(config)
        with held_lock(config.lock_path, ttl_seconds=config.lock_ttl_seconds):
            COMMANDS[args.command](ctx)
    except BootstrapError as exc:
        logger.error("ERROR %s", exc)
        if exc.hint:
            logger.error("  %s", exc.hint)
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.error("Interrupted; re-run `gateway-bootstrap %s` to resume", args.command)
        return EXIT_INTERRUPTED
    return EXIT_OK


def main_setup(argv: list[str] | None = None) -> int:
    return main(["setup", *(sys.argv[1:] if argv is None else argv)])


def main_start(argv: list[str] | None = None) -> int:
    return main(["start", *(sys.argv[1:] if argv is None else argv)])


def main_stop(argv: list[str] | None = None) -> int:
    return main(["stop", *(sys.argv[1:] if argv is None else argv)])


if __name__ == "__main__":
    raise SystemExit(main())
