from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

SERVER_NAME = "mcp-server-nu"
SERVER_VERSION = "0.1.0"
LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")

TOOL_NAME = "exec"
DEFAULT_TIMEOUT = 30
MAX_TIMEOUT = 24 * 60 * 60
DEFAULT_NU_PATH = "nu"

# exit_code reported when the OS gives none (killed by a signal)
MISSING_EXIT_CODE = -1


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


class TerminationReason(Enum):
    STREAM_CLOSED = "stream_closed"
    PREMATURE_REQUEST = "premature_request"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class SessionResult:
    reason: TerminationReason
    request_id: int | str | None = None
    method: str | None = None


@dataclass(frozen=True)
class InvocationRequest:
    tool_name: str
    script: str
    timeout_seconds: int = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class Completed:
    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class TimedOut:
    timeout: float
    elapsed: float


@dataclass(frozen=True)
class SpawnFailed:
    cause: str


ExecutionOutcome = Union[Completed, TimedOut, SpawnFailed]


@dataclass
class ServerConfig:
    nu_path: str = DEFAULT_NU_PATH
    config_path: str | None = None
    env_config_path: str | None = None
    default_timeout: int = DEFAULT_TIMEOUT

    def interpreter_flags(self) -> list[str]:
        flags: list[str] = []
        if self.config_path is not None:
            flags.extend(["--config", self.config_path])
        if self.env_config_path is not None:
            flags.extend(["--env-config", self.env_config_path])
        return flags
