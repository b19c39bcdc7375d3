from __future__ import annotations

import logging

from nu_mcp.handler import ToolHandler
from nu_mcp.protocol import make_error, not_initialized_error
from nu_mcp.session import Session
from nu_mcp.transport.base import BaseTransport
from nu_mcp.types import ServerConfig, SessionResult, TerminationReason

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TRANSPORT_ERROR = 1


async def _reject_premature(transport: BaseTransport, result: SessionResult) -> bool:
    try:
        await transport.send(make_error(result.request_id, not_initialized_error(result.method)))
    except ConnectionError as exc:
        logger.error("Could not report premature request %r: %s", result.request_id, exc)
        return False
    return True


async def serve(config: ServerConfig, transport: BaseTransport, handler: ToolHandler | None = None) -> int:
    """Run sessions over ``transport`` until one ends for good; return the exit code.

    A session that ends because a request arrived before the handshake is
    answered with a "Server not initialized" error and replaced by a fresh
    session, so the client can start over.
    """
    if handler is None:
        handler = ToolHandler(config)
    sessions = 0
    while True:
        sessions += 1
        logger.debug("Starting session %d", sessions)
        result = await Session(transport, handler).run()

        if result.reason is TerminationReason.PREMATURE_REQUEST:
            if not await _reject_premature(transport, result):
                return EXIT_TRANSPORT_ERROR
            logger.info("Restarting session after premature %s request", result.method)
            continue

        if result.reason is TerminationReason.STREAM_CLOSED:
            logger.info("Client closed the stream, shutting down")
            return EXIT_OK

        logger.error("Session ended with %s", result.reason.value)
        return EXIT_TRANSPORT_ERROR
