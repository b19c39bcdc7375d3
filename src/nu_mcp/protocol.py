from __future__ import annotations

import json
import re
from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_NOT_INITIALIZED = -32002

# best-effort id recovery from a frame that is not valid JSON
_ID_RE = re.compile(r'"id"\s*:\s*(-?\d+|"(?:[^"\\]|\\.)*")')


class JsonRpcError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict:
        error: dict = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class FrameError(Exception):
    """A frame that could not be turned into a JSON-RPC message."""

    def __init__(self, error: JsonRpcError, request_id: int | str | None) -> None:
        super().__init__(error.message)
        self.error = error
        self.request_id = request_id


def make_response(request_id: int | str | None, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def make_error(request_id: int | str | None, error: JsonRpcError) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_dict()}


def not_initialized_error(method: str | None) -> JsonRpcError:
    return JsonRpcError(
        SERVER_NOT_INITIALIZED,
        f"Server not initialized: received '{method}' before initialization. "
        "Send 'initialize' and 'notifications/initialized' first.",
        data={"method": method},
    )


def recover_id(raw: str) -> int | str | None:
    match = _ID_RE.search(raw)
    if match is None:
        return None
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError:
        return None


def is_notification(message: dict) -> bool:
    return "id" not in message


def decode_frame(raw: str) -> dict:
    """Parse one line into a JSON-RPC message object.

    Raises FrameError carrying the error to report and whatever request id
    could be salvaged (None when the frame should be dropped silently).
    """
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FrameError(
            JsonRpcError(PARSE_ERROR, f"Parse error: {exc.msg}"),
            recover_id(raw),
        ) from exc

    if not isinstance(message, dict):
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Invalid Request: expected a JSON object"), None)

    request_id = message.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, (int, str, type(None))):
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Invalid Request: id must be a string or integer"), None)

    if request_id is None and "id" in message and "method" in message:
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Invalid Request: id must not be null"), None)

    if "method" not in message and ("result" in message or "error" in message):
        # client responses are never expected
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Unexpected response message"), None)

    if message.get("jsonrpc") != "2.0":
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'"), request_id)

    if not isinstance(message.get("method"), str):
        raise FrameError(JsonRpcError(INVALID_REQUEST, "Invalid Request: missing method"), request_id)

    return message


def encode_frame(message: dict) -> bytes:
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")
