from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from nu_mcp import __version__
from nu_mcp.types import DEFAULT_NU_PATH, DEFAULT_TIMEOUT, MAX_TIMEOUT, ServerConfig

NU_PATH_ENV = "NU_MCP_NU_PATH"


def _timeout_arg(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}") from None
    if not 1 <= value <= MAX_TIMEOUT:
        raise argparse.ArgumentTypeError(f"expected an integer from 1 to {MAX_TIMEOUT}, got {raw!r}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-server-nu",
        description="MCP server that executes Nushell scripts over stdio",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"mcp-server-nu {__version__}",
    )
    parser.add_argument(
        "--nu-path",
        default=os.environ.get(NU_PATH_ENV, DEFAULT_NU_PATH),
        help=f"Nushell executable to run (default: ${NU_PATH_ENV} or '{DEFAULT_NU_PATH}')",
    )
    parser.add_argument(
        "--config",
        default=None,
        dest="config_path",
        help="Nushell config file passed to every invocation as --config",
    )
    parser.add_argument(
        "--env-config",
        default=None,
        dest="env_config_path",
        help="Nushell env config file passed to every invocation as --env-config",
    )
    parser.add_argument(
        "--timeout",
        type=_timeout_arg,
        default=DEFAULT_TIMEOUT,
        help=f"Default script timeout in seconds when a call omits timeout_seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging on stderr",
    )
    return parser


def _error(msg: str) -> None:
    print(f"mcp-server-nu: error: {msg}", file=sys.stderr)
    sys.exit(2)


def build_config(args: argparse.Namespace) -> ServerConfig:
    for flag, path in (("--config", args.config_path), ("--env-config", args.env_config_path)):
        if path is not None and not os.path.isfile(path):
            _error(f"{flag} file not found: {path}")
    return ServerConfig(
        nu_path=args.nu_path,
        config_path=args.config_path,
        env_config_path=args.env_config_path,
        default_timeout=args.timeout,
    )


async def _run(config: ServerConfig) -> int:
    from nu_mcp.server import serve
    from nu_mcp.transport.stdio import StdioTransport

    async with StdioTransport() as transport:
        return await serve(config, transport)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = build_config(args)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(name)s: %(message)s",
    )
    logger = logging.getLogger("nu_mcp")
    logger.info(
        "Starting mcp-server-nu %s (nu=%s, default timeout %ss)",
        __version__,
        config.nu_path,
        config.default_timeout,
    )

    try:
        exit_code = asyncio.run(_run(config))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)

    sys.exit(exit_code)
