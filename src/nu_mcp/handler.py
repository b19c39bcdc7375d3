from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable

from nu_mcp.protocol import INVALID_PARAMS, JsonRpcError
from nu_mcp.runner import build_command, run_script
from nu_mcp.schema_utils import apply_defaults, validation_errors
from nu_mcp.types import (
    DEFAULT_TIMEOUT,
    MAX_TIMEOUT,
    TOOL_NAME,
    Completed,
    ExecutionOutcome,
    InvocationRequest,
    ServerConfig,
    SpawnFailed,
    TimedOut,
)

logger = logging.getLogger(__name__)

ScriptRunner = Callable[[list[str], float], Awaitable[ExecutionOutcome]]

_LOG_PREVIEW_CHARS = 100

SERVER_INSTRUCTIONS = (
    "This server executes Nushell scripts and returns their output. "
    "Nushell does not support trailing backslashes for line continuation; "
    "use round braces () to write multi-line pipelines, "
    "e.g. (ls | where size > 1MB | get name)."
)

EXEC_DESCRIPTION = """\
Executes a nushell script and returns stdout, stderr, and exit code.

EXECUTION PATTERN - CRITICAL:
Execute ONE command at a time that produces meaningful output. For complex tasks, \
break into sequential single commands like a human operator would. This allows:
- Seeing intermediate results before proceeding
- Easier error diagnosis and recovery
- Step-by-step validation of progress

AVOID: Long multi-step scripts that could fail midway
PREFER: Single commands with clear output, then assess and continue

IMPORTANT NUSHELL SYNTAX DIFFERENCES FROM POSIX:

Line Continuation:
- NO trailing backslashes (\\). Use parentheses () for multi-line pipelines
- Example: (ls | where size > 1MB | get name)

Output/Printing:
- DON'T use 'echo' - it doesn't work like POSIX echo
- Use 'print' for side-effect output: print 'hello world'
- Use string literals for return values: 'return value'
- Use pipelines for processing: 'data' | filter | transform

Common Patterns:
- Filter: ls | where size > 1MB
- Transform: ls | get name
- Variables: let var = 'value'
- Return from pipeline: 'result' (not echo 'result')

Data Types:
- Nushell is structured data focused
- Commands return tables/records, not just text
- Use 'to csv' to convert structured data for LLM consumption
- Use 'to text' for plain text output"""


def exec_input_schema(default_timeout: int = DEFAULT_TIMEOUT) -> dict:
    return {
        "type": "object",
        "properties": {
            "script": {
                "type": "string",
                "minLength": 1,
                "description": "The nushell script to execute.",
            },
            "timeout_seconds": {
                "type": "integer",
                "minimum": 1,
                "maximum": MAX_TIMEOUT,
                "default": default_timeout,
                "description": f"Maximum run time in seconds (default {default_timeout}).",
            },
        },
        "required": ["script"],
    }


def exec_tool(default_timeout: int = DEFAULT_TIMEOUT) -> dict:
    return {
        "name": TOOL_NAME,
        "description": EXEC_DESCRIPTION,
        "inputSchema": exec_input_schema(default_timeout),
    }


def _invalid(detail: str, field: str | None = None) -> JsonRpcError:
    data = {"field": field} if field is not None else None
    return JsonRpcError(INVALID_PARAMS, f"Invalid tool parameters: {detail}", data=data)


def parse_invocation(params: object, default_timeout: int = DEFAULT_TIMEOUT) -> InvocationRequest:
    if not isinstance(params, dict):
        raise _invalid("params must be an object")
    name = params.get("name")
    if not isinstance(name, str) or not name:
        raise _invalid("name: missing tool name", "name")
    if name != TOOL_NAME:
        raise JsonRpcError(INVALID_PARAMS, f"Tool not found: {name}", data={"name": name})

    arguments = params.get("arguments", {})
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise _invalid("arguments must be an object", "arguments")

    schema = exec_input_schema(default_timeout)
    errors = validation_errors(schema, arguments)
    if errors:
        raise _invalid("; ".join(errors), errors[0].split(":", 1)[0])

    arguments = apply_defaults(schema, arguments)
    script = arguments["script"]
    if not script.strip():
        raise _invalid("script: must not be blank", "script")

    return InvocationRequest(
        tool_name=name,
        script=script,
        timeout_seconds=int(arguments["timeout_seconds"]),
    )


def _text_result(text: str, is_error: bool) -> dict:
    return {
        "content": [{"type": "text", "text": text}],
        "isError": is_error,
    }


def outcome_to_result(outcome: ExecutionOutcome) -> dict:
    if isinstance(outcome, Completed):
        payload = {
            "stdout": outcome.stdout,
            "stderr": outcome.stderr,
            "exit_code": outcome.exit_code,
        }
        return _text_result(json.dumps(payload, indent=2, ensure_ascii=False), False)
    if isinstance(outcome, TimedOut):
        return _text_result(
            f"Command timed out after {outcome.timeout:g} seconds. "
            "Consider breaking down complex scripts into smaller steps.",
            True,
        )
    if isinstance(outcome, SpawnFailed):
        return _text_result(f"Command execution failed: {outcome.cause}", True)
    raise TypeError(f"Unknown execution outcome: {outcome!r}")


class ToolHandler:
    def __init__(self, config: ServerConfig, runner: ScriptRunner = run_script) -> None:
        self._config = config
        self._runner = runner

    def list_tools(self) -> dict:
        return {"tools": [exec_tool(self._config.default_timeout)]}

    async def call(self, params: object) -> dict:
        request = parse_invocation(params, self._config.default_timeout)
        logger.info("Executing nushell script: %s", request.script[:_LOG_PREVIEW_CHARS])

        outcome = await self._runner(
            build_command(self._config, request.script),
            request.timeout_seconds,
        )

        if isinstance(outcome, Completed):
            if outcome.exit_code != 0:
                logger.warning(
                    "Command exited with non-zero code: %s, stderr: %s",
                    outcome.exit_code,
                    outcome.stderr,
                )
            else:
                logger.info("Command completed successfully")
        elif isinstance(outcome, TimedOut):
            logger.warning(
                "Command timed out after %s seconds (%.2fs elapsed)",
                request.timeout_seconds,
                outcome.elapsed,
            )
        else:
            logger.error("Command execution failed: %s", outcome.cause)

        return outcome_to_result(outcome)
