#!/usr/bin/env python3
"""
Check Runner CLI

Runs one verification check against a cluster of Bee nodes.

Commands:
- roundtrip: upload/download integrity between random node pairs
- replication: chunks reach their closest node and are replicated
- recovery: chunks deleted cluster-wide come back through recovery

Example:
    swarmcheck --node bee-0=http://bee-0:1633,http://bee-0:1635 \\
               --node bee-1=http://bee-1:1633,http://bee-1:1635 \\
               --node bee-2=http://bee-2:1633,http://bee-2:1635 \\
               recovery --chunks-to-repair 3
"""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple, get_args, get_origin

from loguru import logger

import swarmcheck
from swarmcheck.checks import CHECKS, CheckKind, create_check, build_options
from swarmcheck.cluster.static import StaticCluster
from swarmcheck.core.errors import ConfigurationError, InsufficientTopologyError, SwarmCheckError
from swarmcheck.core.runtime import RunContext
from swarmcheck.core.streams import default_seed
from swarmcheck.telemetry.loki import LokiHandler
from swarmcheck.telemetry.metrics import InMemoryMetrics


EXIT_OK = 0
EXIT_CHECK_FAILED = 1
EXIT_CONFIG_ERROR = 2


class _LoguruHandler(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(exception=record.exc_info).log(level, record.getMessage())


def parse_node(value: str) -> Tuple[str, Tuple[str, Optional[str]]]:
    """Parse NAME=API[,DEBUG]."""
    name, sep, urls = value.partition("=")
    if not sep or not name or not urls:
        raise argparse.ArgumentTypeError(f"expected NAME=API[,DEBUG], got {value!r}")
    api, _, debug = urls.partition(",")
    return name, (api, debug or None)


def _is_list(annotation) -> bool:
    if get_origin(annotation) is list:
        return True
    return any(get_origin(arg) is list for arg in get_args(annotation))


def add_option_flags(parser: argparse.ArgumentParser, options_type) -> None:
    """Expose every options field as --flag; unset flags keep model defaults."""
    for name, info in options_type.model_fields.items():
        if name == "kind":
            continue
        flag = "--" + name.replace("_", "-")
        kwargs = {"dest": name, "default": argparse.SUPPRESS, "help": info.description}
        if info.annotation is bool:
            kwargs["action"] = argparse.BooleanOptionalAction
        elif _is_list(info.annotation):
            kwargs["nargs"] = "+"
        parser.add_argument(flag, **kwargs)


class CheckCLI:
    """CLI for running checks."""

    def create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="swarmcheck",
            description="Verify a content-addressed storage cluster",
        )
        parser.add_argument("--version", action="version", version=swarmcheck.__version__)
        parser.add_argument(
            "--node",
            action="append",
            type=parse_node,
            default=[],
            metavar="NAME=API[,DEBUG]",
            help="Cluster node (repeat for each node)",
        )
        parser.add_argument(
            "--seed",
            type=int,
            default=int(os.environ["SWARMCHECK_SEED"]) if os.getenv("SWARMCHECK_SEED") else None,
            help="Run seed (default: SWARMCHECK_SEED or time based)",
        )
        parser.add_argument("--timeout", type=float, default=60.0, help="HTTP timeout (seconds)")
        parser.add_argument(
            "--loki-url",
            default=os.getenv("SWARMCHECK_LOKI_URL"),
            help="Loki push endpoint for logs",
        )
        parser.add_argument(
            "--log-dir",
            default=os.getenv("SWARMCHECK_LOG_DIR", "logs"),
            help="Directory for rotated log files",
        )
        parser.add_argument("--metrics-out", type=Path, help="Write Prometheus metrics to this file")
        parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

        subparsers = parser.add_subparsers(dest="command", help="Checks")
        for kind, check_type in CHECKS.items():
            sub = subparsers.add_parser(kind.value, help=check_type.__doc__)
            add_option_flags(sub, check_type.options_type)

        return parser

    def configure_logging(self, args) -> None:
        level = "DEBUG" if args.verbose else "INFO"
        logger.remove()
        logger.add(sys.stderr, level=level)
        logger.add(
            os.path.join(args.log_dir, "swarmcheck_{time}.log"),
            rotation="1 day",
            retention="30 days",
            level=level,
        )

        handlers: List[logging.Handler] = [_LoguruHandler()]
        if args.loki_url:
            handlers.append(LokiHandler(args.loki_url, labels={"check": args.command}))
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, handlers=handlers, force=True)

    def options_from_args(self, args) -> Dict:
        reserved = {"node", "seed", "timeout", "loki_url", "log_dir", "metrics_out", "verbose", "command"}
        data = {k: v for k, v in vars(args).items() if k not in reserved}
        data["kind"] = args.command
        return data

    def run(self, argv=None) -> int:
        parser = self.create_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return EXIT_CONFIG_ERROR

        self.configure_logging(args)

        try:
            options = build_options(self.options_from_args(args))
        except ConfigurationError as e:
            logger.error("Invalid options: {}", e)
            return EXIT_CONFIG_ERROR

        if not args.node:
            logger.error("No cluster nodes given (use --node NAME=API[,DEBUG])")
            return EXIT_CONFIG_ERROR

        endpoints = dict(args.node)
        seed = args.seed if args.seed is not None else default_seed()
        metrics = InMemoryMetrics(prefix=f"check_{CheckKind(args.command).value}")
        cluster = StaticCluster.from_endpoints(endpoints, timeout=args.timeout)
        ctx = RunContext(seed)

        previous = signal.signal(signal.SIGINT, lambda signum, frame: ctx.cancel())

        logger.info("🚀 Starting {} check on {} nodes", args.command, cluster.size())
        logger.info("   Seed: {}", seed)
        logger.info("   Version: {}", swarmcheck.__version__)

        try:
            report = create_check(options, metrics=metrics).run(ctx, cluster)
        except (ConfigurationError, InsufficientTopologyError) as e:
            logger.error("Invalid configuration: {}", e)
            return EXIT_CONFIG_ERROR
        except SwarmCheckError as e:
            logger.error("❌ {} check failed: {}", args.command, e)
            return EXIT_CHECK_FAILED
        finally:
            signal.signal(signal.SIGINT, previous)
            cluster.close()
            if args.metrics_out:
                args.metrics_out.write_text(metrics.export_prometheus())

        summary = report.summary()
        logger.info(
            "✅ {} check done: {} iterations, {} succeeded, {} mismatches{}",
            args.command,
            summary["iterations"],
            summary["succeeded"],
            summary["mismatches"],
            " (interrupted)" if summary["interrupted"] else "",
        )
        return EXIT_OK


def main():
    """CLI entry point."""
    cli = CheckCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
