"""Per-connection MCP session: the initialize handshake and request dispatch."""

from __future__ import annotations

import logging

from nu_mcp.handler import SERVER_INSTRUCTIONS, ToolHandler
from nu_mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    FrameError,
    JsonRpcError,
    decode_frame,
    is_notification,
    make_error,
    make_response,
)
from nu_mcp.transport.base import BaseTransport
from nu_mcp.types import (
    LATEST_PROTOCOL_VERSION,
    SERVER_NAME,
    SERVER_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    SessionResult,
    SessionState,
    TerminationReason,
)

logger = logging.getLogger(__name__)

INITIALIZED_NOTIFICATION = "notifications/initialized"

# requests a client may send before the handshake completes
_PRE_INIT_METHODS = frozenset({"initialize", "ping"})


def initialize_result(params: object) -> dict:
    requested = params.get("protocolVersion") if isinstance(params, dict) else None
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        version = requested
    else:
        version = LATEST_PROTOCOL_VERSION
    return {
        "protocolVersion": version,
        "capabilities": {"tools": {"listChanged": False}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        "instructions": SERVER_INSTRUCTIONS,
    }


class Session:
    def __init__(self, transport: BaseTransport, handler: ToolHandler) -> None:
        self._transport = transport
        self._handler = handler

    async def run(self) -> SessionResult:
        """Serve messages until the stream ends or the session has to stop.

        A request other than initialize/ping arriving before the handshake
        ends the session with PREMATURE_REQUEST and nothing is written for
        it here; replying is left to the caller.
        """
        state = SessionState.UNINITIALIZED
        initialize_answered = False

        while True:
            try:
                line = await self._transport.read_line()
            except ValueError as exc:
                logger.warning("Dropping unreadable frame: %s", exc)
                continue
            except ConnectionError as exc:
                logger.error("Transport read failed: %s", exc)
                return SessionResult(TerminationReason.TRANSPORT_ERROR)
            if line is None:
                return SessionResult(TerminationReason.STREAM_CLOSED)

            try:
                message = decode_frame(line)
            except FrameError as exc:
                if exc.request_id is None:
                    logger.warning("Dropping malformed frame: %s", exc.error.message)
                    continue
                response = make_error(exc.request_id, exc.error)
            else:
                method = message["method"]

                if is_notification(message):
                    if method != INITIALIZED_NOTIFICATION:
                        logger.debug("Ignoring notification %s", method)
                    elif state is SessionState.INITIALIZED:
                        logger.debug("Duplicate %s ignored", method)
                    elif not initialize_answered:
                        logger.warning("Ignoring %s received before initialize", method)
                    else:
                        state = SessionState.INITIALIZED
                        logger.info("Handshake complete")
                    continue

                request_id = message["id"]
                if state is SessionState.UNINITIALIZED and method not in _PRE_INIT_METHODS:
                    logger.info("Request %r (%s) arrived before initialization", request_id, method)
                    return SessionResult(TerminationReason.PREMATURE_REQUEST, request_id, method)

                response = await self._dispatch(message, state)
                if method == "initialize" and "result" in response:
                    initialize_answered = True

            try:
                await self._transport.send(response)
            except ConnectionError as exc:
                logger.error("Transport write failed: %s", exc)
                return SessionResult(TerminationReason.TRANSPORT_ERROR)

    async def _dispatch(self, message: dict, state: SessionState) -> dict:
        request_id = message["id"]
        method = message["method"]
        params = message.get("params", {})
        try:
            if method == "initialize":
                if state is SessionState.INITIALIZED:
                    raise JsonRpcError(INVALID_REQUEST, "Server already initialized")
                return make_response(request_id, initialize_result(params))
            if method == "ping":
                return make_response(request_id, {})
            if method == "tools/list":
                return make_response(request_id, self._handler.list_tools())
            if method == "tools/call":
                return make_response(request_id, await self._handler.call(params))
            raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
        except JsonRpcError as exc:
            logger.info("Request %r (%s) failed: %s", request_id, method, exc.message)
            return make_error(request_id, exc)
        except Exception:
            logger.exception("Unhandled error in %s", method)
            return make_error(request_id, JsonRpcError(INTERNAL_ERROR, "Internal error"))
