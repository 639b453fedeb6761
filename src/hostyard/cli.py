"""Command line utilities for hostyard."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

from .config import DEFAULT_AJP_PORT, DEFAULT_SSL_PORT, ServerConfig, load_config
from .exceptions import BootstrapFailure, ConfigurationError
from .orchestrator import DeploymentOrchestrator
from .serialization import json_encode
from .server import GranianRuntime, GranianSettings

PROJECT_NAME = "hostyard"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return args.func(args)
    except ConfigurationError as exc:
        print(f"{PROJECT_NAME}: {exc}", file=sys.stderr)
        return 2
    except BootstrapFailure as exc:
        print(f"{PROJECT_NAME}: {exc}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Configuration document (JSON, TOML or YAML)")
    common.add_argument("-p", "--port", type=int, help="HTTP port")
    common.add_argument("-a", "--address", help="Bind address, also used as the default host name")
    common.add_argument("-d", "--web-app-dir", dest="web_app_dir", help="Directory of the default web application")
    common.add_argument("--apps-base", dest="apps_base", help="Directory whose sub-directories are web applications")
    common.add_argument("--ssl", nargs="?", type=int, const=DEFAULT_SSL_PORT, help="Enable HTTPS on PORT")
    common.add_argument("--ajp", nargs="?", type=int, const=DEFAULT_AJP_PORT, help="Enable AJP on PORT")
    common.add_argument("-e", "--environment", help="Environment name (development, production, ...)")
    common.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")

    parser = argparse.ArgumentParser(prog=PROJECT_NAME, description="hostyard server commands")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", parents=[common], help="Print the resolved server topology as JSON")
    plan.set_defaults(func=_cmd_plan)

    serve = sub.add_parser("serve", parents=[common], help="Deploy the topology and serve it with Granian")
    serve.add_argument("--app", required=True, help="ASGI application as module:attribute")
    serve.add_argument("--workers", type=int, default=1, help="Granian workers per listener")
    serve.set_defaults(func=_cmd_serve)

    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for option in ("port", "address", "web_app_dir", "apps_base", "environment"):
        value = getattr(args, option)
        if value is not None:
            overrides[option] = value
    if args.ssl is not None:
        overrides["ssl"] = {"port": args.ssl}
    if args.ajp is not None:
        overrides["ajp"] = {"port": args.ajp}
    return overrides


def _load(args: argparse.Namespace) -> ServerConfig:
    return load_config(args.config, overrides=_overrides(args))


def _cmd_plan(args: argparse.Namespace) -> int:
    orchestrator = DeploymentOrchestrator(_load(args))
    topology = orchestrator.configure()
    print(json_encode(topology).decode("utf-8"))
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    config = _load(args)
    settings = GranianSettings(target=args.app, workers=args.workers, profile=config.environment)
    orchestrator = DeploymentOrchestrator(config, runtime=GranianRuntime(settings))
    try:
        orchestrator.start()
    finally:
        orchestrator.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover - module entry point
    sys.exit(main())
